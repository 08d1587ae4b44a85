"""
Regex slot extraction for requested meeting times

Date words and clock times are found separately and paired: a clock time
belongs to a date when it sits inside a character window around the date
mention. When the message holds exactly one clock time and it is outside
every window, the whole message is rescanned and that time is attached to
the nearest date.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence

from dateutil.relativedelta import relativedelta, MO, TU, WE, TH, FR, SA, SU

from ..timezone.constants import ABBREVIATION_ALTERNATION, TIMEZONE_ABBREVIATIONS
from .models import CandidateTime

WEEKDAYS = {
    'monday': MO, 'tuesday': TU, 'wednesday': WE, 'thursday': TH,
    'friday': FR, 'saturday': SA, 'sunday': SU,
}

MONTHS = {
    'january': 1, 'jan': 1, 'february': 2, 'feb': 2, 'march': 3, 'mar': 3,
    'april': 4, 'apr': 4, 'may': 5, 'june': 6, 'jun': 6, 'july': 7, 'jul': 7,
    'august': 8, 'aug': 8, 'september': 9, 'sep': 9, 'sept': 9,
    'october': 10, 'oct': 10, 'november': 11, 'nov': 11, 'december': 12, 'dec': 12,
}

_AMPM = r'(?:a\.?m\.?|p\.?m\.?)(?![a-z])'

CLOCK_PATTERN = re.compile(
    r'(?<![\d/:-])(?P<hour>\d{1,2})(?::(?P<minute>[0-5]\d))?\s*(?P<ampm>' + _AMPM + r')?'
    r'(?:\s*(?:-|–|to|until|till)\s*'
    r'(?P<end_hour>\d{1,2})(?::(?P<end_minute>[0-5]\d))?\s*(?P<end_ampm>' + _AMPM + r')?)?'
    r'(?:\s*(?P<zone>' + ABBREVIATION_ALTERNATION + r')\b)?'
    r'(?![\d/:])',
    re.IGNORECASE
)

NAMED_TIME_PATTERN = re.compile(r'\b(?P<name>noon|midday|midnight)\b', re.IGNORECASE)

DATE_PATTERN = re.compile(
    r'\b(?:'
    r'(?P<relative>day after tomorrow|tomorrow|today|tonight|next business day|next week|this week)'
    r'|(?:(?P<modifier>this|next|coming)\s+)?(?P<weekday>monday|tuesday|wednesday|thursday|friday|saturday|sunday)'
    r'|(?P<month_name>' + '|'.join(sorted(MONTHS, key=len, reverse=True)) + r')\.?\s+(?P<month_day>\d{1,2})(?:st|nd|rd|th)?(?:,?\s*(?P<month_year>\d{4}))?'
    r'|(?P<iso_year>\d{4})-(?P<iso_month>\d{2})-(?P<iso_day>\d{2})'
    r'|(?P<num_month>\d{1,2})/(?P<num_day>\d{1,2})(?:/(?P<num_year>\d{2,4}))?'
    r')\b',
    re.IGNORECASE
)

VAGUE_EXPRESSIONS = {'next week', 'this week'}


@dataclass
class DateMention:
    expression: str
    day: Optional[date]
    start: int
    end: int

    @property
    def is_vague(self) -> bool:
        return self.expression in VAGUE_EXPRESSIONS


@dataclass
class ClockMention:
    raw: str
    hour: int
    minute: int
    start: int
    end: int
    end_hour: Optional[int] = None
    end_minute: int = 0
    zone: Optional[str] = None

    def distance_to(self, mention: DateMention) -> int:
        if self.end <= mention.start:
            return mention.start - self.end
        if mention.end <= self.start:
            return self.start - mention.end
        return 0


# ============================================================================
# CLOCK TIMES
# ============================================================================

def _to_24h(hour: int, ampm: Optional[str]) -> Optional[int]:
    if ampm:
        if not 1 <= hour <= 12:
            return None
        is_pm = ampm.lower().startswith('p')
        if hour == 12:
            return 12 if is_pm else 0
        return hour + 12 if is_pm else hour
    return hour if 0 <= hour <= 23 else None


def _range_start_meridiem(start: int, end: int, end_ampm: str) -> str:
    """Meridiem for a range start written without one ("2-3pm", "11-1pm", "12-1pm")."""
    same = 'pm' if end_ampm.lower().startswith('p') else 'am'
    other = 'am' if same == 'pm' else 'pm'
    if start == 12:
        # 12-1pm starts at noon
        return same
    if end == 12 or start > end:
        # 11-12pm and 11-1pm start before noon
        return other
    return same


def find_clock_times(text: str) -> List[ClockMention]:
    """
    Clock times in ``text``: "2pm", "2:30 PM", "14:00", "2-3pm",
    "10am to 11am EST", "noon".

    A bare number needs am/pm or minutes to count as a time.
    """
    mentions: List[ClockMention] = []
    for match in CLOCK_PATTERN.finditer(text):
        ampm = match.group('ampm')
        end_ampm = match.group('end_ampm')
        has_minutes = match.group('minute') is not None
        has_end = match.group('end_hour') is not None

        zone_abbr = match.group('zone')
        if not (ampm or has_minutes or zone_abbr or (has_end and (end_ampm or match.group('end_minute')))):
            continue

        raw_hour = int(match.group('hour'))
        if zone_abbr and not (ampm or end_ampm or has_minutes) and 1 <= raw_hour <= 7:
            # "at 3 EST" in a business context is the afternoon
            ampm = 'pm'
        start_ampm = ampm
        if not ampm and has_end and end_ampm and raw_hour <= 12:
            start_ampm = _range_start_meridiem(raw_hour, int(match.group('end_hour')), end_ampm)

        hour = _to_24h(raw_hour, start_ampm)
        if hour is None:
            continue

        end_hour = None
        end_minute = 0
        if has_end:
            end_hour = _to_24h(int(match.group('end_hour')), end_ampm or start_ampm)
            end_minute = int(match.group('end_minute') or 0)
            if end_hour is not None and not end_ampm and end_hour < hour and end_hour + 12 <= 23:
                # "11am-1" ends at 1pm
                end_hour += 12

        mentions.append(ClockMention(
            raw=match.group(0).strip(),
            hour=hour,
            minute=int(match.group('minute') or 0),
            start=match.start(),
            end=match.end(),
            end_hour=end_hour,
            end_minute=end_minute,
            zone=TIMEZONE_ABBREVIATIONS.get(zone_abbr.lower()) if zone_abbr else None,
        ))

    for match in NAMED_TIME_PATTERN.finditer(text):
        hour = 0 if match.group('name').lower() == 'midnight' else 12
        mentions.append(ClockMention(raw=match.group(0), hour=hour, minute=0, start=match.start(), end=match.end()))

    mentions.sort(key=lambda m: m.start)
    return mentions


# ============================================================================
# DATES
# ============================================================================

def _next_business_day(reference: date) -> date:
    day = reference + timedelta(days=1)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day


def _upcoming_weekday(reference: date, name: str) -> date:
    """Next occurrence of ``name``; the same weekday as today means a week out."""
    target = WEEKDAYS[name]
    day = reference + relativedelta(weekday=target(+1))
    if day == reference:
        day += timedelta(days=7)
    return day


def _resolve_year(month: int, day: int, year: Optional[str], reference: date) -> Optional[date]:
    try:
        if year:
            full_year = int(year) + 2000 if len(year) == 2 else int(year)
            return date(full_year, month, day)
        candidate = date(reference.year, month, day)
    except ValueError:
        return None
    # A date without a year that already passed means next year
    if candidate < reference:
        try:
            candidate = date(reference.year + 1, month, day)
        except ValueError:
            return None
    return candidate


def find_date_mentions(text: str, reference: date) -> List[DateMention]:
    mentions: List[DateMention] = []
    for match in DATE_PATTERN.finditer(text):
        expression = match.group(0).lower()
        day: Optional[date] = None

        relative = match.group('relative')
        if relative:
            relative = relative.lower()
            expression = relative
            if relative in ('today', 'tonight'):
                day = reference
            elif relative == 'tomorrow':
                day = reference + timedelta(days=1)
            elif relative == 'day after tomorrow':
                day = reference + timedelta(days=2)
            elif relative == 'next business day':
                day = _next_business_day(reference)
            elif relative == 'next week':
                day = reference + relativedelta(weekday=MO(+1))
                if day == reference:
                    day += timedelta(days=7)
            elif relative == 'this week':
                day = reference
        elif match.group('weekday'):
            day = _upcoming_weekday(reference, match.group('weekday').lower())
        elif match.group('month_name'):
            day = _resolve_year(
                MONTHS[match.group('month_name').lower()],
                int(match.group('month_day')),
                match.group('month_year'),
                reference
            )
        elif match.group('iso_year'):
            day = _resolve_year(
                int(match.group('iso_month')),
                int(match.group('iso_day')),
                match.group('iso_year'),
                reference
            )
        else:
            month, day_of_month = int(match.group('num_month')), int(match.group('num_day'))
            if not (1 <= month <= 12 and 1 <= day_of_month <= 31):
                continue
            day = _resolve_year(month, day_of_month, match.group('num_year'), reference)

        if day is None:
            continue
        mentions.append(DateMention(expression=expression, day=day, start=match.start(), end=match.end()))
    return mentions


# ============================================================================
# PAIRING
# ============================================================================

def _in_window(clock: ClockMention, mention: DateMention, window_chars: int) -> bool:
    return clock.start >= mention.start - window_chars and clock.end <= mention.end + window_chars


def _candidate(date_mention: Optional[DateMention], clock: Optional[ClockMention], day: Optional[date]) -> CandidateTime:
    raw_parts = [part for part in (
        date_mention.expression if date_mention else None,
        clock.raw if clock else None,
    ) if part]
    return CandidateTime(
        raw=' '.join(raw_parts),
        day=day,
        date_expression=date_mention.expression if date_mention else None,
        hour=clock.hour if clock else None,
        minute=clock.minute if clock else 0,
        end_hour=clock.end_hour if clock else None,
        end_minute=clock.end_minute if clock else 0,
        explicit_zone=clock.zone if clock else None,
    )


def extract_candidate_times(
    text: str,
    reference: datetime,
    window_chars: int = 50,
    standalone_distance: int = 20
) -> List[CandidateTime]:
    """
    Candidate meeting times in ``text``, relative to ``reference`` (the
    message's receipt time in the user's zone).

    Args:
        text: Subject and body
        reference: Anchor for "today", weekdays and year-less dates
        window_chars: Lookbehind/lookahead around a date word for its time
        standalone_distance: A time at least this far from every date word,
            in a message without date words, is read as today
    """
    if not text:
        return []

    today = reference.date()
    dates = find_date_mentions(text, today)
    clocks = find_clock_times(text)

    candidates: List[CandidateTime] = []
    used_clocks = set()
    unpaired_dates: List[DateMention] = []

    for mention in dates:
        nearby = [c for c in clocks if _in_window(c, mention, window_chars) and id(c) not in used_clocks]
        if nearby and not mention.is_vague:
            clock = min(nearby, key=lambda c: (c.distance_to(mention), c.start))
            used_clocks.add(id(clock))
            candidates.append(_candidate(mention, clock, mention.day))
        else:
            unpaired_dates.append(mention)

    # Second pass over the full message for a lone time far from its date
    concrete_dates = [m for m in unpaired_dates if not m.is_vague]
    if len(clocks) == 1 and not used_clocks and concrete_dates:
        clock = clocks[0]
        mention = min(concrete_dates, key=lambda m: (clock.distance_to(m), m.start))
        used_clocks.add(id(clock))
        unpaired_dates.remove(mention)
        candidates.append(_candidate(mention, clock, mention.day))

    for mention in unpaired_dates:
        candidates.append(_candidate(mention, None, mention.day))

    for clock in clocks:
        if id(clock) in used_clocks:
            continue
        if all(clock.distance_to(m) >= standalone_distance for m in dates):
            candidates.append(_candidate(None, clock, today))

    return _dedupe(candidates)


def _dedupe(candidates: Sequence[CandidateTime]) -> List[CandidateTime]:
    seen = set()
    unique: List[CandidateTime] = []
    for candidate in candidates:
        key = (candidate.day, candidate.hour, candidate.minute, candidate.explicit_zone)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    # Concrete times first, then in the order they were written
    return sorted(unique, key=lambda c: not c.is_concrete)
