"""
TimeZoneResolver - canonical user timezone and explicit zones in text

Resolution order for a user: in-process cache -> durable store -> calendar
provider setting -> configured default. ``resolve`` never raises.
"""
import asyncio
import re
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime
from datetime import time as clock_time
from typing import Callable, Dict, Optional, Tuple

import pytz

from ...utils.config import Config, ConfigDefaults, get_timezone
from ...utils.logger import setup_logger
from ..interfaces import CalendarProvider
from ..meetings.models import CandidateTime, ResolutionMethod, ResolvedTime
from .constants import (
    DST_SAMPLE_MONTHS,
    EXPLICIT_ZONE_PATTERN,
    SOURCE_PROVIDER,
    SOURCE_USER,
    TIMEZONE_ABBREVIATIONS,
)
from .store import TimezoneStore

logger = setup_logger(__name__)

_EXPLICIT_ZONE_RE = re.compile(EXPLICIT_ZONE_PATTERN, re.IGNORECASE)


def extract_explicit_zone(text: str) -> Optional[str]:
    """
    Find a clock time followed by a known timezone abbreviation.

    >>> extract_explicit_zone("let's meet at 2pm EST")
    'America/New_York'
    >>> extract_explicit_zone("let's meet at 2pm") is None
    True
    """
    if not text:
        return None
    match = _EXPLICIT_ZONE_RE.search(text)
    if not match:
        return None
    return TIMEZONE_ABBREVIATIONS.get(match.group(1).lower())


def is_valid_timezone(zone: Optional[str]) -> bool:
    return bool(zone) and zone in pytz.all_timezones_set


@dataclass(frozen=True)
class TimezoneInfo:
    """Offset and daylight-saving facts for a zone at a given moment"""
    zone: str
    utc_offset_minutes: int
    abbreviation: str
    observes_dst: bool
    is_dst_now: bool


def timezone_info(zone: str, at: Optional[datetime] = None) -> TimezoneInfo:
    """
    Describe ``zone`` at ``at`` (default: now).

    DST observance compares the January and July offsets of the same year,
    which covers both hemispheres.
    """
    tz = pytz.timezone(zone)
    moment = (at or datetime.now(pytz.utc)).astimezone(tz)

    samples = [tz.localize(datetime(moment.year, month, 1, 12)) for month in DST_SAMPLE_MONTHS]
    observes_dst = samples[0].utcoffset() != samples[1].utcoffset()

    offset = moment.utcoffset()
    return TimezoneInfo(
        zone=zone,
        utc_offset_minutes=int(offset.total_seconds() // 60) if offset is not None else 0,
        abbreviation=moment.tzname() or zone,
        observes_dst=observes_dst,
        is_dst_now=bool(moment.dst()),
    )


class TimezoneCache:
    """
    In-process TTL cache of user zones.

    Read-mostly, last writer wins. One instance is shared by a resolver;
    tests inject their own clock.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[str, ResolutionMethod, float]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[Tuple[str, ResolutionMethod]]:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            zone, method, stored_at = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[user_id]
                return None
            return zone, method

    def set(self, user_id: str, zone: str, method: ResolutionMethod) -> None:
        with self._lock:
            self._entries[user_id] = (zone, method, self._clock())

    def invalidate(self, user_id: Optional[str] = None) -> None:
        with self._lock:
            if user_id is None:
                self._entries.clear()
            else:
                self._entries.pop(user_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class TimeZoneResolver:
    """Resolves user zones and turns candidate times into absolute instants."""

    def __init__(
        self,
        store: Optional[TimezoneStore] = None,
        calendar: Optional[CalendarProvider] = None,
        cache: Optional[TimezoneCache] = None,
        default_zone: str = ConfigDefaults.TIMEZONE_DEFAULT,
        provider_timeout: float = 5.0
    ):
        if not is_valid_timezone(default_zone):
            raise ValueError(f"Invalid default timezone: {default_zone}")
        self.store = store
        self.calendar = calendar
        self.cache = cache or TimezoneCache(ConfigDefaults.TIMEZONE_CACHE_TTL_HOURS * 3600)
        self.default_zone = default_zone
        self.provider_timeout = provider_timeout

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: Optional[TimezoneStore] = None,
        calendar: Optional[CalendarProvider] = None
    ) -> "TimeZoneResolver":
        """The fallback zone honours a TIMEZONE override in the environment."""
        default_zone = get_timezone(config)
        if not is_valid_timezone(default_zone):
            logger.warning(f"[TimeZoneResolver] Ignoring invalid fallback zone '{default_zone}'")
            default_zone = config.timezone.default
        return cls(
            store=store,
            calendar=calendar,
            cache=TimezoneCache(config.timezone.cache_ttl_hours * 3600),
            default_zone=default_zone,
        )

    # ------------------------------------------------------------------
    # User zone
    # ------------------------------------------------------------------

    async def resolve(self, user_id: str) -> str:
        zone, _ = await self.resolve_with_method(user_id)
        return zone

    async def resolve_with_method(self, user_id: str) -> Tuple[str, ResolutionMethod]:
        cached = self.cache.get(user_id)
        if cached:
            return cached

        stored = self._read_store(user_id)
        if stored:
            self.cache.set(user_id, stored, ResolutionMethod.USER_DEFAULT)
            return stored, ResolutionMethod.USER_DEFAULT

        provided = await self._read_provider(user_id)
        if provided:
            self.cache.set(user_id, provided, ResolutionMethod.PROVIDER_OF_RECORD)
            self._write_store(user_id, provided, SOURCE_PROVIDER)
            return provided, ResolutionMethod.PROVIDER_OF_RECORD

        logger.info(f"[TimeZoneResolver] Using default {self.default_zone} for {user_id}")
        return self.default_zone, ResolutionMethod.SYSTEM_FALLBACK

    def _read_store(self, user_id: str) -> Optional[str]:
        if self.store is None:
            return None
        try:
            zone = self.store.get(user_id)
        except Exception as e:
            logger.warning(f"[TimeZoneResolver] Store lookup failed for {user_id}: {e}")
            return None
        if zone and not is_valid_timezone(zone):
            logger.warning(f"[TimeZoneResolver] Ignoring invalid stored zone '{zone}' for {user_id}")
            return None
        return zone

    async def _read_provider(self, user_id: str) -> Optional[str]:
        if self.calendar is None:
            return None
        try:
            zone = await asyncio.wait_for(self.calendar.get_timezone(user_id), self.provider_timeout)
        except Exception as e:
            logger.warning(f"[TimeZoneResolver] Provider lookup failed for {user_id}: {e}")
            return None
        if zone and not is_valid_timezone(zone):
            logger.warning(f"[TimeZoneResolver] Provider returned invalid zone '{zone}' for {user_id}")
            return None
        return zone

    def _write_store(self, user_id: str, zone: str, source: str) -> None:
        if self.store is None:
            return
        try:
            self.store.save(user_id, zone, source)
        except Exception as e:
            logger.warning(f"[TimeZoneResolver] Could not persist zone for {user_id}: {e}")

    async def set_user_timezone(self, user_id: str, zone: str) -> None:
        """Explicit user choice; overrides whatever the provider says."""
        if not is_valid_timezone(zone):
            raise ValueError(f"Invalid timezone: {zone}")
        if self.store is not None:
            self.store.save(user_id, zone, SOURCE_USER)
        self.cache.set(user_id, zone, ResolutionMethod.USER_DEFAULT)

    def clear_cache(self, user_id: Optional[str] = None) -> None:
        self.cache.invalidate(user_id)

    # ------------------------------------------------------------------
    # Text and candidate times
    # ------------------------------------------------------------------

    def extract_explicit_zone(self, text: str) -> Optional[str]:
        return extract_explicit_zone(text)

    async def resolve_time(self, candidate: CandidateTime, user_id: str) -> Optional[ResolvedTime]:
        """
        Pin a concrete candidate to an absolute instant.

        A zone written next to the time wins; otherwise the user's zone is
        used. Vague candidates resolve to None.
        """
        if not candidate.is_concrete:
            return None

        if candidate.explicit_zone and is_valid_timezone(candidate.explicit_zone):
            zone, method = candidate.explicit_zone, ResolutionMethod.EXPLICIT_IN_TEXT
        else:
            zone, method = await self.resolve_with_method(user_id)

        instant = localize(candidate.day, candidate.hour, candidate.minute, zone)
        return ResolvedTime(instant=instant, zone=zone, method=method)


def localize(day: date, hour: int, minute: int, zone: str) -> datetime:
    """Wall-clock time in ``zone`` as an aware datetime (pytz handles DST)."""
    tz = pytz.timezone(zone)
    return tz.localize(datetime.combine(day, clock_time(hour % 24, minute)))
