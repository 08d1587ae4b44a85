"""
Pytest configuration and fixtures
"""
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

import pytest
import pytz

from chiefai.database import create_db_engine, create_session_factory, init_db
from chiefai.services.interfaces import CalendarProvider, EmailProvider
from chiefai.services.meetings.models import CalendarEvent, EventRef, InboundMessage
from chiefai.utils.config import (
    AgentConfig,
    AIConfig,
    Config,
    PipelineConfig,
    ResponseConfig,
    TimezoneConfig,
)

USER_ID = "user-1"
USER_ZONE = "America/Los_Angeles"


# ============================================
# FAKE COLLABORATORS
# ============================================

class FakeCalendar(CalendarProvider):
    """In-memory calendar; set ``error`` to make every read fail"""

    def __init__(self, events: Optional[List[CalendarEvent]] = None, timezone: Optional[str] = None):
        self.events = list(events or [])
        self.timezone = timezone
        self.error: Optional[Exception] = None
        self.list_calls = 0
        self.created: List[Dict[str, Any]] = []

    async def list_events(self, user_id, window, zone):
        self.list_calls += 1
        if self.error:
            raise self.error
        return [e for e in self.events if window.overlaps(e.start, e.end)]

    async def create_event(self, user_id, window, zone, attendees, summary=""):
        self.created.append({'window': window, 'attendees': list(attendees), 'summary': summary})
        return EventRef(event_id=f"evt-{len(self.created)}", html_link="https://calendar.example.com/evt")

    async def get_timezone(self, user_id):
        return self.timezone


class FakeEmail(EmailProvider):
    def __init__(self, messages: Optional[Dict[str, InboundMessage]] = None, history: int = 0):
        self.messages = dict(messages or {})
        self.history = history

    async def fetch_message(self, message_id):
        return self.messages[message_id]

    async def count_messages_with(self, user_id, address):
        return self.history


Reply = Union[str, Exception, Callable[[Dict[str, Any]], str]]


class FakeTextGenerator:
    """Answers per task; an Exception value is raised instead"""

    def __init__(self, replies: Optional[Dict[str, Reply]] = None):
        self.replies = dict(replies or {})
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, prompt_context):
        self.calls.append(prompt_context)
        reply = self.replies.get(prompt_context.get('task'), '')
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt_context)
        return reply

    def calls_for(self, task: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call.get('task') == task]


class FakeLinks:
    def __init__(self, url: Optional[str] = None):
        self.url = url

    async def get_scheduling_link(self, user_id):
        return self.url


MEETING_JSON = (
    '{"is_meeting_request": true, "confidence": 0.9, "purpose": "project sync", '
    '"urgency": "medium", "attendees": [], "location": null}'
)
NOT_MEETING_JSON = '{"is_meeting_request": false, "confidence": 0.95}'


def make_message(
    body: str,
    subject: str = "Quick sync",
    message_id: str = "msg-1",
    sender: str = "Dana Smith <dana@partner.com>",
    received_at: Optional[datetime] = None,
    **kwargs
) -> InboundMessage:
    return InboundMessage(
        message_id=message_id,
        sender=sender,
        subject=subject,
        body=body,
        thread_id=kwargs.pop('thread_id', 'thread-1'),
        received_at=received_at or pytz.utc.localize(datetime(2030, 3, 4, 17, 0)),
        **kwargs
    )


def aware(zone: str, *args) -> datetime:
    return pytz.timezone(zone).localize(datetime(*args))


# ============================================
# FIXTURES
# ============================================

@pytest.fixture
def test_config():
    """Test configuration"""
    return Config(
        agent=AgentConfig(
            name="Test Agent",
            email="me@example.com",
            additional_addresses=["me.alias@example.com"],
        ),
        ai=AIConfig(api_key="test_key", timeout_seconds=1.0),
        timezone=TimezoneConfig(default=USER_ZONE),
        response=ResponseConfig(use_ai=False),
        pipeline=PipelineConfig(inter_message_delay=0),
    )


@pytest.fixture
def db_engine():
    """Fresh in-memory database per test"""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def email():
    return FakeEmail()


@pytest.fixture
def text_generator():
    return FakeTextGenerator({'meeting_detection': MEETING_JSON})
