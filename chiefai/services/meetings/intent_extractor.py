"""
MeetingIntentExtractor - is this message a meeting request, and for when?

Bulk traffic and messages without scheduling language are rejected before
the language model is called. The model decides intent and confidence;
times, duration and the other slots come from deterministic parsing so a
model hallucination cannot invent a time the sender never wrote.
"""
import asyncio
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import pytz

from ...utils.config import DetectionConfig
from ...utils.json_utils import repair_json
from ...utils.logger import setup_logger
from ..interfaces import TextGenerator
from .filters import has_meeting_language, is_bulk_message
from .models import (
    CandidateTime,
    DetectionOutcome,
    InboundMessage,
    MeetingCategory,
    MeetingRequest,
    UrgencyLevel,
)
from .time_expressions import extract_candidate_times

logger = setup_logger(__name__)

MEETING_DETECTION_PROMPT = """
You classify emails for a personal scheduling assistant.

Decide whether the email asks the recipient to meet (call, video meeting,
in-person meeting, interview, demo, coffee, catch-up). Receipts, shipping
notices, newsletters and event announcements are not meeting requests.

Return a JSON object with:
- is_meeting_request: true or false
- confidence: number between 0.0 and 1.0
- purpose: short phrase describing the meeting, or null
- duration_minutes: integer if the sender states a length, else null
- urgency: one of [high, medium, low]
- attendees: list of people or addresses the sender wants included
- location: meeting place or medium (zoom, phone, office...), or null

Response must be valid JSON only.
"""

DETECTION_TEMPERATURE = 0.1
DETECTION_MAX_TOKENS = 400

REASON_BULK = "Bulk or promotional message"
REASON_NO_LANGUAGE = "No scheduling language"
REASON_NOT_MEETING = "Not a meeting request"
REASON_LOW_CONFIDENCE = "Below confidence threshold"
REASON_UNAVAILABLE = "Meeting detection unavailable"

# ============================================================================
# SLOT PATTERNS
# ============================================================================

DURATION_PATTERNS: List[Tuple[re.Pattern, Any]] = [
    (re.compile(r'\b(\d+(?:\.\d+)?)\s*(?:-\s*)?(?:hours?|hrs?)\b', re.I), lambda m: round(float(m.group(1)) * 60)),
    (re.compile(r'\b(\d+)\s*(?:-\s*)?(?:minutes?|mins?)\b', re.I), lambda m: int(m.group(1))),
    (re.compile(r'\bhalf\s+(?:an\s+)?hour\b', re.I), 30),
    (re.compile(r'\b(?:an|one)\s+hour\b', re.I), 60),
    (re.compile(r'\bquick\s+(?:chat|call|sync)\b', re.I), 15),
    (re.compile(r'\bbrief\s+(?:meeting|call|chat)\b', re.I), 30),
    (re.compile(r'\bcatch[\s-]?up\b', re.I), 30),
]

LOCATION_KEYWORDS = [
    ('google meet', 'Google Meet'),
    ('zoom', 'Zoom'),
    ('teams', 'Microsoft Teams'),
    ('video call', 'Video call'),
    ('phone call', 'Phone'),
    ('phone', 'Phone'),
    ('in person', 'In person'),
    ('in-person', 'In person'),
    ('office', 'Office'),
    ('remote', 'Remote'),
    ('virtual', 'Virtual'),
]

REQUIREMENTS_PATTERN = re.compile(
    r'\b(?:agenda|discuss|regarding|talk about|go over)\s*:?\s*(.{10,100}?)(?:[.!?\n]|$)',
    re.IGNORECASE
)

EMAIL_PATTERN = re.compile(r'[\w.+-]+@[\w-]+(?:\.[\w-]+)+')

HIGH_URGENCY = (
    'urgent', 'asap', 'emergency', 'critical', 'immediately', 'today',
    'deadline', 'time sensitive', 'time-sensitive',
)
LOW_URGENCY = (
    'whenever', 'no rush', 'flexible', 'eventually', 'when you can',
    'no hurry', 'at your convenience',
)


def _contains_any(text: str, phrases) -> bool:
    return any(re.search(r'\b' + re.escape(p) + r'\b', text) for p in phrases)


def parse_duration(text: str, default: int) -> int:
    for pattern, value in DURATION_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        minutes = value(match) if callable(value) else value
        if 5 <= minutes <= 8 * 60:
            return minutes
    return default


def parse_location(text: str) -> Optional[str]:
    lowered = text.lower()
    for keyword, label in LOCATION_KEYWORDS:
        if re.search(r'\b' + re.escape(keyword) + r'\b', lowered):
            return label
    return None


def parse_requirements(text: str) -> Optional[str]:
    match = REQUIREMENTS_PATTERN.search(text)
    return match.group(1).strip() if match else None


def classify_urgency(text: str, suggested: Optional[str] = None) -> UrgencyLevel:
    lowered = text.lower()
    if _contains_any(lowered, HIGH_URGENCY):
        return UrgencyLevel.HIGH
    if _contains_any(lowered, LOW_URGENCY):
        return UrgencyLevel.LOW
    try:
        return UrgencyLevel((suggested or '').lower())
    except ValueError:
        return UrgencyLevel.MEDIUM


def classify_category(text: str, purpose: Optional[str] = None) -> MeetingCategory:
    lowered = f"{purpose or ''} {text}".lower()
    if _contains_any(lowered, ('urgent', 'asap', 'emergency')):
        return MeetingCategory.URGENT
    if _contains_any(lowered, ('weekly', 'recurring', 'every week', 'biweekly', 'bi-weekly', 'monthly', 'standing')):
        return MeetingCategory.RECURRING
    if _contains_any(lowered, ('flexible', 'whenever', 'any time', 'anytime')):
        return MeetingCategory.FLEXIBLE
    return MeetingCategory.REGULAR


def parse_confidence(value: Any) -> int:
    """Model confidence as 0-100; accepts 0-1 fractions or percentages."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if number <= 1.0:
        number *= 100
    return max(0, min(100, int(round(number))))


class MeetingIntentExtractor:
    """Turns an inbound message into a MeetingRequest, or says why not."""

    def __init__(
        self,
        text_generator: TextGenerator,
        config: Optional[DetectionConfig] = None,
        timeout_seconds: float = 15.0
    ):
        self.text_generator = text_generator
        self.config = config or DetectionConfig()
        self.timeout_seconds = timeout_seconds

    async def detect(self, message: InboundMessage, reference: Optional[datetime] = None) -> Optional[MeetingRequest]:
        """The MeetingRequest, or None for non-meetings, low confidence and failures."""
        outcome = await self.analyze(message, reference)
        return outcome.meeting_request

    async def analyze(self, message: InboundMessage, reference: Optional[datetime] = None) -> DetectionOutcome:
        if is_bulk_message(message, self.config.excluded_categories):
            logger.debug(f"[MeetingIntentExtractor] Bulk message {message.message_id} skipped")
            return DetectionOutcome(reason=REASON_BULK)

        text = message.text
        if not has_meeting_language(text):
            return DetectionOutcome(reason=REASON_NO_LANGUAGE)

        try:
            analysis = await self._classify(message)
        except Exception as e:
            logger.warning(f"[MeetingIntentExtractor] Classification failed for {message.message_id}: {e}")
            return DetectionOutcome(reason=REASON_UNAVAILABLE, failed=True)

        confidence = parse_confidence(analysis.get('confidence'))
        if not analysis.get('is_meeting_request'):
            return DetectionOutcome(confidence=confidence, reason=REASON_NOT_MEETING)
        if confidence < self.config.min_confidence:
            logger.info(
                f"[MeetingIntentExtractor] {message.message_id} scored {confidence} "
                f"(< {self.config.min_confidence}), not a meeting"
            )
            return DetectionOutcome(confidence=confidence, reason=REASON_LOW_CONFIDENCE)

        request = self._build_request(message, analysis, confidence, reference)
        logger.info(
            f"[MeetingIntentExtractor] Meeting request in {message.message_id}: "
            f"confidence={confidence}, times={len(request.candidate_times)}"
        )
        return DetectionOutcome(meeting_request=request, confidence=confidence)

    async def _classify(self, message: InboundMessage) -> Dict[str, Any]:
        prompt = (
            f"From: {message.sender}\n"
            f"Subject: {message.subject}\n\n"
            f"{(message.body or '')[:4000]}"
        )
        raw = await asyncio.wait_for(
            self.text_generator.generate({
                'task': 'meeting_detection',
                'system': MEETING_DETECTION_PROMPT,
                'prompt': prompt,
                'temperature': DETECTION_TEMPERATURE,
                'max_tokens': DETECTION_MAX_TOKENS,
            }),
            timeout=self.timeout_seconds
        )
        analysis = repair_json(raw or '')
        if 'is_meeting_request' not in analysis:
            raise ValueError("model reply has no is_meeting_request field")
        return analysis

    def _build_request(
        self,
        message: InboundMessage,
        analysis: Dict[str, Any],
        confidence: int,
        reference: Optional[datetime]
    ) -> MeetingRequest:
        text = message.text
        anchor = reference or message.received_at or datetime.now(pytz.utc)
        candidates = extract_candidate_times(
            text,
            anchor,
            window_chars=self.config.date_window_chars,
            standalone_distance=self.config.standalone_time_distance,
        )

        purpose = analysis.get('purpose') or None
        return MeetingRequest(
            message_id=message.message_id,
            sender=message.sender_email,
            sender_name=message.sender_name,
            subject=message.subject,
            thread_id=message.thread_id,
            candidate_times=tuple(candidates),
            duration_minutes=self._duration(text, analysis, candidates),
            category=classify_category(text, purpose),
            urgency=classify_urgency(text, analysis.get('urgency')),
            location=parse_location(text) or analysis.get('location') or None,
            special_requirements=parse_requirements(text),
            attendees=self._attendees(message, analysis),
            confidence=confidence,
            purpose=purpose,
        )

    def _duration(self, text: str, analysis: Dict[str, Any], candidates: List[CandidateTime]) -> int:
        for candidate in candidates:
            if candidate.is_concrete and candidate.end_hour is not None:
                minutes = (candidate.end_hour * 60 + candidate.end_minute) - (candidate.hour * 60 + candidate.minute)
                if minutes > 0:
                    return minutes

        default = self.config.default_duration_minutes
        parsed = parse_duration(text, default)
        if parsed != default:
            return parsed
        suggested = analysis.get('duration_minutes')
        if isinstance(suggested, (int, float)) and 5 <= suggested <= 8 * 60:
            return int(suggested)
        return default

    @staticmethod
    def _attendees(message: InboundMessage, analysis: Dict[str, Any]) -> Tuple[str, ...]:
        found: List[str] = []
        for address in EMAIL_PATTERN.findall(message.body or ''):
            address = address.lower()
            if address != message.sender_email and address not in found:
                found.append(address)
        for name in analysis.get('attendees') or []:
            if isinstance(name, str) and name.strip() and name.strip().lower() not in found:
                found.append(name.strip())
        return tuple(found)
