"""
Cheap message predicates run before any model call
"""
import re
from typing import Iterable, Optional

from .models import InboundMessage

NO_REPLY_PATTERN = re.compile(r'^(?:no-?reply|do-?not-?reply|mailer-daemon|notifications?)@', re.IGNORECASE)

BULK_HEADERS = ('List-Unsubscribe', 'List-Id')
BULK_PRECEDENCE = {'bulk', 'list', 'junk'}

MEETING_KEYWORDS = (
    'meet', 'meeting', 'call', 'chat', 'catch up', 'catch-up', 'sync', 'schedule',
    'calendar', 'available', 'availability', 'free', 'appointment', 'discuss',
    'coffee', 'lunch', 'zoom', 'teams', 'google meet', 'conference', 'demo',
    'interview', 'connect', 'talk', 'slot', 'book',
)

# Whole words, allowing plural and tense endings
_KEYWORD_RE = re.compile(
    r'\b(?:' + '|'.join(re.escape(k) for k in MEETING_KEYWORDS) + r')(?:s|es|d|ed|ing)?\b',
    re.IGNORECASE
)


def is_bulk_message(message: InboundMessage, excluded_categories: Iterable[str]) -> bool:
    """Marketing, newsletter and notification traffic never gets a reply."""
    excluded = {c.lower() for c in excluded_categories}
    if any(category.lower() in excluded for category in message.categories):
        return True
    if NO_REPLY_PATTERN.match(message.sender_email):
        return True
    precedence = message.header('Precedence')
    if precedence and precedence.strip().lower() in BULK_PRECEDENCE:
        return True
    return any(message.header(name) for name in BULK_HEADERS)


def has_meeting_language(text: str) -> bool:
    return bool(text) and _KEYWORD_RE.search(text) is not None


def is_self_generated(
    message: InboundMessage,
    own_addresses: Iterable[str],
    reply_marker: Optional[str] = None,
    generated_header: Optional[str] = None
) -> bool:
    """
    True for messages this assistant produced, so replying would loop.

    A message qualifies when it carries the generated-by header, or when it
    was sent from one of the user's own addresses and contains the reply
    marker. Mail the user wrote by hand is not caught.
    """
    if generated_header and message.header(generated_header):
        return True

    own = {address.lower() for address in own_addresses if address}
    if message.sender_email not in own:
        return False
    if not reply_marker:
        return False
    return reply_marker.lower() in (message.body or '').lower()
