"""
Timezone resolution for the meeting pipeline
"""
from .resolver import (
    TimeZoneResolver,
    TimezoneCache,
    TimezoneInfo,
    extract_explicit_zone,
    is_valid_timezone,
    localize,
    timezone_info,
)
from .store import TimezoneStore

__all__ = [
    'TimeZoneResolver',
    'TimezoneCache',
    'TimezoneInfo',
    'TimezoneStore',
    'extract_explicit_zone',
    'is_valid_timezone',
    'localize',
    'timezone_info',
]
