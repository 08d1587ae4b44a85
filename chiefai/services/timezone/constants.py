"""
Constants for timezone resolution
"""

# Closed set of abbreviations accepted after a clock time. Ambiguous ones
# (IST, AST, ...) are deliberately absent and resolve to nothing.
TIMEZONE_ABBREVIATIONS = {
    'pst': 'America/Los_Angeles',
    'pdt': 'America/Los_Angeles',
    'mst': 'America/Denver',
    'mdt': 'America/Denver',
    'cst': 'America/Chicago',
    'cdt': 'America/Chicago',
    'est': 'America/New_York',
    'edt': 'America/New_York',
    'akst': 'America/Anchorage',
    'akdt': 'America/Anchorage',
    'hst': 'Pacific/Honolulu',
    'hdt': 'Pacific/Honolulu',
    'gmt': 'Europe/London',
    'bst': 'Europe/London',
    'utc': 'UTC',
    'cet': 'Europe/Paris',
    'cest': 'Europe/Paris',
    'jst': 'Asia/Tokyo',
    'aest': 'Australia/Sydney',
    'aedt': 'Australia/Sydney',
    'nzst': 'Pacific/Auckland',
    'nzdt': 'Pacific/Auckland',
}

# Longest first so "akst" wins over "kst"-style prefixes
ABBREVIATION_ALTERNATION = '|'.join(
    sorted(TIMEZONE_ABBREVIATIONS, key=len, reverse=True)
)

# Time Parse Patterns
TIME_12H = r'(\d{1,2})(?::(\d{2}))?\s*(a\.?m\.?|p\.?m\.?)'
TIME_24H = r'(\d{1,2}):(\d{2})'

# A clock time immediately followed by a known abbreviation: "2pm EST", "14:30 CET"
EXPLICIT_ZONE_PATTERN = (
    r'\b\d{1,2}(?::\d{2})?\s*(?:a\.?m\.?|p\.?m\.?)?\s*'
    r'(' + ABBREVIATION_ALTERNATION + r')\b'
)

# Sources recorded in the durable store
SOURCE_PROVIDER = 'provider'
SOURCE_USER = 'user'

# Reference dates for the DST check (northern and southern summers differ)
DST_SAMPLE_MONTHS = (1, 7)
