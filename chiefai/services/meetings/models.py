"""
Domain values for the meeting pipeline

Everything here is an in-memory value; persisted rows live in
chiefai.database.models.
"""
from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime, timedelta
from email.utils import parseaddr
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

import pytz


# ============================================================================
# ENUMS
# ============================================================================

class MeetingCategory(str, Enum):
    URGENT = "urgent"
    REGULAR = "regular"
    FLEXIBLE = "flexible"
    RECURRING = "recurring"


class UrgencyLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MeetingStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class ResolutionMethod(str, Enum):
    """How the zone of a ResolvedTime was chosen"""
    EXPLICIT_IN_TEXT = "explicit_in_text"
    USER_DEFAULT = "user_default"
    PROVIDER_OF_RECORD = "provider_of_record"
    SYSTEM_FALLBACK = "system_fallback"


class ResponseStrategy(str, Enum):
    ACCEPT = "accept"
    PROPOSE_ALTERNATIVES = "propose_alternatives"
    SCHEDULING_LINK_VAGUE = "scheduling_link_vague"
    SCHEDULING_LINK_CONFLICT = "scheduling_link_conflict"
    REQUEST_MORE_INFO = "request_more_info"

    @property
    def uses_scheduling_link(self) -> bool:
        return self in (ResponseStrategy.SCHEDULING_LINK_VAGUE, ResponseStrategy.SCHEDULING_LINK_CONFLICT)


class SenderRelationship(str, Enum):
    STRANGER = "stranger"
    NEW_CONTACT = "new_contact"
    KNOWN_CONTACT = "known_contact"


class ProcessingStatus(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    ERROR = "error"


# ============================================================================
# INPUT
# ============================================================================

@dataclass(frozen=True)
class InboundMessage:
    """A message as delivered by the email provider"""
    message_id: str
    sender: str
    subject: str
    body: str
    thread_id: Optional[str] = None
    received_at: Optional[datetime] = None
    categories: Tuple[str, ...] = ()
    headers: Mapping[str, str] = field(default_factory=dict, hash=False, compare=False)

    @property
    def sender_email(self) -> str:
        return parseaddr(self.sender)[1].lower() or self.sender.strip().lower()

    @property
    def sender_name(self) -> Optional[str]:
        name = parseaddr(self.sender)[0]
        return name or None

    @property
    def text(self) -> str:
        return f"{self.subject or ''}\n\n{self.body or ''}".strip()

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


# ============================================================================
# TIME VALUES
# ============================================================================

@dataclass(frozen=True, eq=False)
class ResolvedTime:
    """
    An absolute instant plus the zone used to resolve it.

    Identity is the instant alone: 10:00 America/New_York equals
    07:00 America/Los_Angeles on the same day.
    """
    instant: datetime
    zone: str
    method: ResolutionMethod

    def __post_init__(self):
        if self.instant.tzinfo is None:
            raise ValueError("ResolvedTime requires a timezone-aware instant")

    @property
    def utc(self) -> datetime:
        return self.instant.astimezone(pytz.utc)

    def local(self) -> datetime:
        return self.instant.astimezone(pytz.timezone(self.zone))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResolvedTime):
            return NotImplemented
        return self.utc == other.utc

    def __hash__(self) -> int:
        return hash(self.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {"instant": self.utc.isoformat(), "zone": self.zone, "method": self.method.value}


@dataclass(frozen=True)
class CandidateTime:
    """
    A requested time as found in the text.

    Concrete when both a calendar date and a clock time are known; vague
    otherwise ("next week", "sometime Thursday").
    """
    raw: str
    day: Optional[date] = None
    date_expression: Optional[str] = None
    hour: Optional[int] = None
    minute: int = 0
    end_hour: Optional[int] = None
    end_minute: int = 0
    explicit_zone: Optional[str] = None
    resolved: Optional[ResolvedTime] = None

    @property
    def is_concrete(self) -> bool:
        return self.day is not None and self.hour is not None

    def with_resolution(self, resolved: ResolvedTime) -> "CandidateTime":
        return replace(self, resolved=resolved)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["day"] = self.day.isoformat() if self.day else None
        data["resolved"] = self.resolved.to_dict() if self.resolved else None
        return data


@dataclass(frozen=True)
class TimeWindow:
    """A [start, end) interval evaluated in ``zone``"""
    start: datetime
    end: datetime
    zone: str

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("TimeWindow bounds must be timezone-aware")
        if self.end <= self.start:
            raise ValueError("TimeWindow end must be after start")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def shifted(self, delta: timedelta) -> "TimeWindow":
        tz = pytz.timezone(self.zone)
        # Shift wall-clock time, then re-localize so DST transitions keep local hours
        start_local = self.start.astimezone(tz).replace(tzinfo=None) + delta
        start = tz.localize(start_local)
        return TimeWindow(start=start, end=start + self.duration, zone=self.zone)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and start < self.end

    def local_start(self) -> datetime:
        return self.start.astimezone(pytz.timezone(self.zone))

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat(), "zone": self.zone}


# ============================================================================
# CALENDAR VALUES
# ============================================================================

@dataclass(frozen=True)
class CalendarEvent:
    """Read-only reference to an event owned by the calendar provider"""
    event_id: str
    start: datetime
    end: datetime
    summary: str = ""
    transparent: bool = False  # marked "free"; does not block time

    def blocks(self, window: TimeWindow) -> bool:
        return not self.transparent and window.overlaps(self.start, self.end)


@dataclass(frozen=True)
class EventRef:
    event_id: str
    html_link: Optional[str] = None
    status: str = "tentative"


@dataclass(frozen=True)
class AvailabilityResult:
    window: TimeWindow
    is_available: bool
    conflicts: Tuple[CalendarEvent, ...] = ()
    alternatives: Tuple[TimeWindow, ...] = ()
    # The requested start had already passed
    is_past: bool = False


# ============================================================================
# PIPELINE VALUES
# ============================================================================

@dataclass(frozen=True)
class MeetingRequest:
    """A detected meeting request. Replace, never mutate."""
    message_id: str
    sender: str
    subject: str
    candidate_times: Tuple[CandidateTime, ...] = ()
    duration_minutes: int = 60
    category: MeetingCategory = MeetingCategory.REGULAR
    urgency: UrgencyLevel = UrgencyLevel.MEDIUM
    location: Optional[str] = None
    special_requirements: Optional[str] = None
    attendees: Tuple[str, ...] = ()
    confidence: int = 0
    status: MeetingStatus = MeetingStatus.PENDING
    sender_name: Optional[str] = None
    thread_id: Optional[str] = None
    purpose: Optional[str] = None

    def __post_init__(self):
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence must be within 0-100, got {self.confidence}")

    @property
    def concrete_times(self) -> Tuple[CandidateTime, ...]:
        return tuple(c for c in self.candidate_times if c.is_concrete)

    @property
    def has_concrete_time(self) -> bool:
        return bool(self.concrete_times)

    @property
    def primary_time(self) -> Optional[ResolvedTime]:
        for candidate in self.concrete_times:
            if candidate.resolved is not None:
                return candidate.resolved
        return None

    def with_candidates(self, candidates: Tuple[CandidateTime, ...]) -> "MeetingRequest":
        return replace(self, candidate_times=tuple(candidates))


@dataclass(frozen=True)
class MeetingResponse:
    strategy: ResponseStrategy
    text: str
    calendar_event_created: bool = False
    event_ref: Optional[EventRef] = None
    ai_generated: bool = False
    confidence: int = 0
    suggested_windows: Tuple[TimeWindow, ...] = ()
    scheduling_link: Optional[str] = None


@dataclass(frozen=True)
class DetectionOutcome:
    """What the extractor decided and, for non-meetings, why"""
    meeting_request: Optional[MeetingRequest] = None
    confidence: int = 0
    reason: Optional[str] = None
    failed: bool = False

    @property
    def is_meeting(self) -> bool:
        return self.meeting_request is not None


@dataclass(frozen=True)
class ProcessingResult:
    message_id: str
    user_id: str
    status: ProcessingStatus
    is_meeting_request: bool = False
    confidence: int = 0
    processing_time_ms: int = 0
    reason: Optional[str] = None
    meeting_request: Optional[MeetingRequest] = None
    response: Optional[MeetingResponse] = None

    @property
    def is_error(self) -> bool:
        return self.status is ProcessingStatus.ERROR
