"""
Scheduling link validation
"""
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

KNOWN_PLATFORMS = {
    "calendly.com": "Calendly",
    "cal.com": "Cal.com",
    "acuityscheduling.com": "Acuity Scheduling",
    "bookings.microsoft.com": "Microsoft Bookings",
    "outlook.office365.com": "Microsoft Bookings",
    "tidycal.com": "TidyCal",
    "youcanbook.me": "YouCanBookMe",
    "koalendar.com": "Koalendar",
    "simplybook.me": "SimplyBook.me",
    "appt.link": "Appt.link",
    "calendar.app.google": "Google Calendar",
}


@dataclass(frozen=True)
class SchedulingLink:
    """A validated booking URL"""
    url: str
    platform: Optional[str] = None

    @property
    def is_known_platform(self) -> bool:
        return self.platform is not None


def detect_platform(hostname: str) -> Optional[str]:
    host = hostname.lower()
    for domain, name in KNOWN_PLATFORMS.items():
        if host == domain or host.endswith("." + domain):
            return name
    return None


def validate_scheduling_link(url: Optional[str]) -> Optional[SchedulingLink]:
    """
    Validate a user's scheduling link.

    Only absolute http(s) URLs with a host are accepted. Unknown platforms
    are allowed but carry no platform name.

    Returns:
        SchedulingLink, or None when the link is missing or malformed
    """
    if not url or not url.strip():
        return None

    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"

    try:
        parsed = urlparse(candidate)
    except ValueError:
        return None

    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    if "." not in parsed.hostname:
        return None

    return SchedulingLink(url=candidate, platform=detect_platform(parsed.hostname))
