"""
AvailabilityEvaluator - calendar conflicts and alternative slots

All working-hours arithmetic happens in the window's own zone. A calendar
that cannot be read raises AvailabilityUnavailableError; it is never
reported as free.
"""
import asyncio
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterator, List, Optional, Sequence

import pytz

from ...utils.config import AvailabilityConfig
from ...utils.logger import setup_logger
from ...utils.retry import RetryConfig, call_with_retry
from ..interfaces import CalendarProvider
from .exceptions import AvailabilityUnavailableError
from .models import AvailabilityResult, CalendarEvent, TimeWindow

logger = setup_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(pytz.utc)


class AvailabilityEvaluator:
    """Checks a requested window and proposes nearby open windows."""

    def __init__(
        self,
        calendar: CalendarProvider,
        config: Optional[AvailabilityConfig] = None,
        clock: Callable[[], datetime] = _utc_now,
        retry_attempts: int = RetryConfig.CALENDAR_MAX_ATTEMPTS,
        retry_min_wait: float = RetryConfig.CALENDAR_MIN_WAIT,
        retry_max_wait: float = RetryConfig.CALENDAR_MAX_WAIT
    ):
        self.calendar = calendar
        self.config = config or AvailabilityConfig()
        self.clock = clock
        self.retry_attempts = retry_attempts
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def evaluate(
        self,
        window: TimeWindow,
        user_id: str,
        not_before: Optional[datetime] = None
    ) -> AvailabilityResult:
        """
        Is ``window`` free? If not, up to ``max_alternatives`` open windows.

        Search order: +/- one increment on the same day (earlier first),
        +/- two increments and so on, then the same time +/- one day,
        +/- two days. Only future windows inside working hours qualify.

        A window starting at or before the current time (or ``not_before``,
        e.g. when the message arrived) is never available.

        Raises:
            AvailabilityUnavailableError: calendar unreachable or timed out
        """
        cutoff = self._cutoff(not_before)
        span = timedelta(days=self.config.max_day_offsets)
        search = TimeWindow(start=window.start - span, end=window.end + span, zone=window.zone)
        events = await self._list_events(user_id, search, window.zone)

        conflicts = tuple(event for event in events if event.blocks(window))
        if window.start <= cutoff:
            alternatives = self._find_alternatives(window, events, cutoff)
            logger.info(
                f"[AvailabilityEvaluator] {window.start.isoformat()} has passed for {user_id}, "
                f"{len(alternatives)} alternative(s) proposed"
            )
            return AvailabilityResult(
                window=window,
                is_available=False,
                conflicts=conflicts,
                alternatives=tuple(alternatives),
                is_past=True,
            )

        if not conflicts:
            logger.debug(f"[AvailabilityEvaluator] {window.start.isoformat()} is free for {user_id}")
            return AvailabilityResult(window=window, is_available=True)

        alternatives = self._find_alternatives(window, events, cutoff)
        logger.info(
            f"[AvailabilityEvaluator] {len(conflicts)} conflict(s) for {user_id}, "
            f"{len(alternatives)} alternative(s) proposed"
        )
        return AvailabilityResult(
            window=window,
            is_available=False,
            conflicts=conflicts,
            alternatives=tuple(alternatives),
        )

    async def evaluate_period(
        self,
        first_day: date,
        days: int,
        zone: str,
        user_id: str,
        duration_minutes: int = 60
    ) -> AvailabilityResult:
        """
        Busy periods and open slots across the working hours of ``days`` days.

        Used for vague requests ("sometime next week"). ``is_available`` is
        True when nothing blocks the period at all.
        """
        tz = pytz.timezone(zone)
        last_day = first_day + timedelta(days=max(days, 1) - 1)
        period = TimeWindow(
            start=tz.localize(datetime.combine(first_day, time(self.config.workday_start_hour))),
            end=tz.localize(datetime.combine(last_day, time(self.config.workday_end_hour))),
            zone=zone,
        )
        events = await self._list_events(user_id, period, zone)

        conflicts = tuple(
            event for event in events
            if event.blocks(period) and self._touches_working_hours(event, zone)
        )
        open_slots = self._open_slots(period, events, duration_minutes)
        return AvailabilityResult(
            window=period,
            is_available=not conflicts,
            conflicts=conflicts,
            alternatives=tuple(open_slots),
        )

    # ------------------------------------------------------------------
    # Calendar access
    # ------------------------------------------------------------------

    async def _list_events(self, user_id: str, window: TimeWindow, zone: str) -> List[CalendarEvent]:
        try:
            events = await asyncio.wait_for(
                call_with_retry(
                    self.calendar.list_events,
                    user_id,
                    window,
                    zone,
                    max_attempts=self.retry_attempts,
                    min_wait=self.retry_min_wait,
                    max_wait=self.retry_max_wait,
                ),
                timeout=self.config.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            logger.error(f"[AvailabilityEvaluator] Calendar timed out for {user_id}")
            raise AvailabilityUnavailableError("calendar query timed out") from e
        except Exception as e:
            logger.error(f"[AvailabilityEvaluator] Calendar query failed for {user_id}: {e}", exc_info=True)
            raise AvailabilityUnavailableError("calendar query failed") from e
        return list(events or [])

    # ------------------------------------------------------------------
    # Slot search
    # ------------------------------------------------------------------

    def _nearby_windows(self, window: TimeWindow) -> Iterator[TimeWindow]:
        increment = timedelta(minutes=self.config.slot_increment_minutes)
        for step in range(1, self.config.max_same_day_steps + 1):
            yield window.shifted(-increment * step)
            yield window.shifted(increment * step)
        for offset in range(1, self.config.max_day_offsets + 1):
            yield window.shifted(timedelta(days=-offset))
            yield window.shifted(timedelta(days=offset))

    def _find_alternatives(
        self,
        window: TimeWindow,
        events: Sequence[CalendarEvent],
        cutoff: datetime
    ) -> List[TimeWindow]:
        found: List[TimeWindow] = []
        for candidate in self._nearby_windows(window):
            if self._is_open(candidate, events, cutoff):
                found.append(candidate)
                if len(found) >= self.config.max_alternatives:
                    break
        return found

    def _open_slots(self, period: TimeWindow, events: Sequence[CalendarEvent], duration_minutes: int) -> List[TimeWindow]:
        tz = pytz.timezone(period.zone)
        increment = timedelta(minutes=self.config.slot_increment_minutes)
        duration = timedelta(minutes=duration_minutes)
        slots: List[TimeWindow] = []

        day = period.start.astimezone(tz).date()
        last_day = period.end.astimezone(tz).date()
        while day <= last_day and len(slots) < self.config.max_alternatives:
            cursor = datetime.combine(day, time(self.config.workday_start_hour))
            day_end = datetime.combine(day, time(self.config.workday_end_hour))
            while cursor + duration <= day_end:
                start = tz.localize(cursor)
                candidate = TimeWindow(start=start, end=start + duration, zone=period.zone)
                if self._is_open(candidate, events, self.clock()):
                    slots.append(candidate)
                    # One slot per day
                    break
                cursor += increment
            day += timedelta(days=1)
        return slots

    def _cutoff(self, not_before: Optional[datetime]) -> datetime:
        now = self.clock()
        if not_before is None:
            return now
        return max(now, not_before)

    def _is_open(self, candidate: TimeWindow, events: Sequence[CalendarEvent], cutoff: datetime) -> bool:
        if candidate.start <= cutoff:
            return False
        if not self.within_working_hours(candidate):
            return False
        return not any(event.blocks(candidate) for event in events)

    def within_working_hours(self, window: TimeWindow) -> bool:
        tz = pytz.timezone(window.zone)
        start = window.start.astimezone(tz)
        end = window.end.astimezone(tz)
        if start.date() != end.date() or start.weekday() not in self.config.working_days:
            return False
        return (
            start.time() >= time(self.config.workday_start_hour)
            and end.time() <= time(self.config.workday_end_hour)
        )

    def _touches_working_hours(self, event: CalendarEvent, zone: str) -> bool:
        tz = pytz.timezone(zone)
        start = event.start.astimezone(tz)
        end = event.end.astimezone(tz)
        day = start.date()
        while day <= end.date():
            if day.weekday() in self.config.working_days:
                work_start = tz.localize(datetime.combine(day, time(self.config.workday_start_hour)))
                work_end = tz.localize(datetime.combine(day, time(self.config.workday_end_hour)))
                if event.start < work_end and work_start < event.end:
                    return True
            day += timedelta(days=1)
        return False
