"""
Tests for ResponseStrategySelector and reply drafting
"""
from datetime import timedelta

import pytest
from unittest.mock import AsyncMock, MagicMock

from chiefai.services.meetings.exceptions import ResponseGenerationError
from chiefai.services.meetings.models import (
    AvailabilityResult,
    CalendarEvent,
    MeetingRequest,
    ResponseStrategy,
    SenderRelationship,
    TimeWindow,
    UrgencyLevel,
)
from chiefai.services.meetings.response_content import ResponseContentGenerator, ResponseContext, format_when
from chiefai.services.meetings.response_strategy import (
    ResponseStrategySelector,
    classify_relationship,
    select_strategy,
)
from chiefai.utils.config import AgentConfig, ResponseConfig

from conftest import FakeCalendar, FakeEmail, FakeLinks, FakeTextGenerator, aware

LA = "America/Los_Angeles"
LINK = "https://calendly.com/me/30min"


def window(day=5, hour=14):
    start = aware(LA, 2030, 3, day, hour)
    return TimeWindow(start=start, end=start + timedelta(hours=1), zone=LA)


def request(**overrides):
    values = dict(
        message_id="msg-1",
        sender="dana@partner.com",
        sender_name="Dana Smith",
        subject="Project sync",
        confidence=90,
    )
    values.update(overrides)
    return MeetingRequest(**values)


FREE = AvailabilityResult(window=window(), is_available=True)
BUSY_WITH_OPTIONS = AvailabilityResult(
    window=window(),
    is_available=False,
    conflicts=(CalendarEvent("e1", window().start, window().end),),
    alternatives=(window(5, 13), window(5, 15)),
)
BUSY_NO_OPTIONS = AvailabilityResult(
    window=window(),
    is_available=False,
    conflicts=(CalendarEvent("e1", window().start, window().end),),
)


def selector(
    generator=None,
    links=None,
    email=None,
    calendar=None,
    tone="professional",
    **response_config
):
    config = ResponseConfig(use_ai=generator is not None, **response_config)
    content = ResponseContentGenerator(generator, config, timeout_seconds=0.5)
    return ResponseStrategySelector(
        content,
        email=email,
        calendar=calendar,
        links=links,
        config=config,
        agent=AgentConfig(tone=tone),
    )


# ============================================
# STRATEGY SELECTION
# ============================================

class TestSelectStrategy:
    """Priority order of strategies"""

    @pytest.mark.parametrize("concrete,availability,link,expected", [
        (True, FREE, True, ResponseStrategy.ACCEPT),
        (True, FREE, False, ResponseStrategy.ACCEPT),
        (True, BUSY_WITH_OPTIONS, True, ResponseStrategy.PROPOSE_ALTERNATIVES),
        (True, BUSY_NO_OPTIONS, True, ResponseStrategy.SCHEDULING_LINK_CONFLICT),
        (True, BUSY_NO_OPTIONS, False, ResponseStrategy.REQUEST_MORE_INFO),
        (False, None, False, ResponseStrategy.REQUEST_MORE_INFO),
        (False, None, True, ResponseStrategy.SCHEDULING_LINK_VAGUE),
        (False, FREE, True, ResponseStrategy.SCHEDULING_LINK_VAGUE),
        (False, BUSY_NO_OPTIONS, True, ResponseStrategy.SCHEDULING_LINK_CONFLICT),
    ])
    def test_table(self, concrete, availability, link, expected):
        assert select_strategy(concrete, availability, link) is expected

    @pytest.mark.parametrize("count,expected", [
        (None, SenderRelationship.STRANGER),
        (0, SenderRelationship.STRANGER),
        (1, SenderRelationship.NEW_CONTACT),
        (3, SenderRelationship.NEW_CONTACT),
        (4, SenderRelationship.KNOWN_CONTACT),
    ])
    def test_classify_relationship(self, count, expected):
        assert classify_relationship(count) is expected


# ============================================
# RESPOND
# ============================================

class TestRespond:
    """Drafted replies"""

    @pytest.mark.asyncio
    async def test_accept(self):
        response = await selector().respond(request(), "user-1", FREE, window())

        assert response.strategy is ResponseStrategy.ACCEPT
        assert response.confidence == 95
        assert "Tuesday, March 5 at 2:00 PM PST works for me" in response.text
        assert response.text.startswith("Hello Dana,")
        assert response.suggested_windows == ()
        assert response.calendar_event_created is False
        assert response.ai_generated is False

    @pytest.mark.asyncio
    async def test_alternatives_listed(self):
        response = await selector().respond(request(), "user-1", BUSY_WITH_OPTIONS, window())

        assert response.strategy is ResponseStrategy.PROPOSE_ALTERNATIVES
        assert "- Tuesday, March 5 at 1:00 PM PST" in response.text
        assert "- Tuesday, March 5 at 3:00 PM PST" in response.text
        assert len(response.suggested_windows) == 2

    @pytest.mark.asyncio
    async def test_vague_request_with_link(self):
        response = await selector(links=FakeLinks(LINK)).respond(request(), "user-1")

        assert response.strategy is ResponseStrategy.SCHEDULING_LINK_VAGUE
        assert response.scheduling_link == LINK
        assert LINK in response.text

    @pytest.mark.asyncio
    async def test_default_link_from_config(self):
        response = await selector(default_scheduling_link="cal.com/me").respond(request(), "user-1")

        assert response.scheduling_link == "https://cal.com/me"

    @pytest.mark.asyncio
    async def test_invalid_link_ignored(self):
        response = await selector(links=FakeLinks("not a link")).respond(request(), "user-1")

        assert response.strategy is ResponseStrategy.REQUEST_MORE_INFO
        assert response.scheduling_link is None
        assert "specific dates and times" in response.text

    @pytest.mark.asyncio
    async def test_conflict_without_alternatives_uses_link(self):
        response = await selector(links=FakeLinks(LINK)).respond(request(), "user-1", BUSY_NO_OPTIONS, window())

        assert response.strategy is ResponseStrategy.SCHEDULING_LINK_CONFLICT
        assert "conflict at Tuesday, March 5 at 2:00 PM PST" in response.text
        assert LINK in response.text

    @pytest.mark.asyncio
    async def test_passed_time_not_called_a_conflict(self):
        passed = AvailabilityResult(
            window=window(),
            is_available=False,
            alternatives=(window(5, 15),),
            is_past=True,
        )

        response = await selector().respond(request(), "user-1", passed, window())

        assert response.strategy is ResponseStrategy.PROPOSE_ALTERNATIVES
        assert "Tuesday, March 5 at 2:00 PM PST has already passed" in response.text
        assert "conflict" not in response.text

    @pytest.mark.asyncio
    async def test_display_zone(self):
        """Times are written in the zone the sender used"""
        response = await selector().respond(
            request(), "user-1", FREE, window(), display_zone="America/New_York"
        )

        assert "5:00 PM EST" in response.text

    @pytest.mark.asyncio
    async def test_urgent_opener(self):
        response = await selector().respond(request(urgency=UrgencyLevel.HIGH), "user-1", FREE, window())

        assert "time-sensitive" in response.text

    @pytest.mark.asyncio
    async def test_stranger_gets_professional_tone(self):
        response = await selector(tone="casual", email=FakeEmail(history=0)).respond(
            request(), "user-1", FREE, window()
        )
        assert response.text.startswith("Hello Dana,")

    @pytest.mark.asyncio
    async def test_known_contact_gets_configured_tone(self):
        response = await selector(tone="casual", email=FakeEmail(history=12)).respond(
            request(), "user-1", FREE, window()
        )
        assert response.text.startswith("Hey Dana!")

    @pytest.mark.asyncio
    async def test_relationship_lookup_failure(self):
        email = MagicMock()
        email.count_messages_with = AsyncMock(side_effect=ConnectionError("down"))
        sel = selector(tone="casual", email=email)

        assert await sel.relationship_for("user-1", "dana@partner.com") is SenderRelationship.STRANGER

    @pytest.mark.asyncio
    async def test_auto_book_on_accept(self):
        calendar = FakeCalendar()

        response = await selector(calendar=calendar, auto_book=True).respond(request(), "user-1", FREE, window())

        assert response.calendar_event_created is True
        assert response.event_ref.event_id == "evt-1"
        assert calendar.created[0]['attendees'] == ["dana@partner.com"]

    @pytest.mark.asyncio
    async def test_no_booking_by_default(self):
        calendar = FakeCalendar()

        response = await selector(calendar=calendar).respond(request(), "user-1", FREE, window())

        assert response.event_ref is None
        assert calendar.created == []


# ============================================
# GENERATED TEXT
# ============================================

class TestGeneratedText:
    """Language-model replies and their validation"""

    @pytest.mark.asyncio
    async def test_ai_reply_used(self):
        generator = FakeTextGenerator({
            'meeting_response': "Hi Dana, Tuesday at 2pm works well for me. Talk then!"
        })

        response = await selector(generator).respond(request(), "user-1", FREE, window())

        assert response.ai_generated is True
        assert response.text == "Hi Dana, Tuesday at 2pm works well for me. Talk then!"
        prompt = generator.calls_for('meeting_response')[0]
        assert "Requested time: Tuesday, March 5 at 2:00 PM PST" in prompt['prompt']

    @pytest.mark.asyncio
    async def test_ai_failure_falls_back_to_template(self):
        generator = FakeTextGenerator({'meeting_response': TimeoutError()})

        response = await selector(generator).respond(request(), "user-1", FREE, window())

        assert response.ai_generated is False
        assert "works for me" in response.text

    @pytest.mark.asyncio
    async def test_accept_mentioning_conflict_rejected(self):
        generator = FakeTextGenerator({
            'meeting_response': "Unfortunately I cannot make it, but Tuesday could work."
        })

        response = await selector(generator).respond(request(), "user-1", FREE, window())

        assert response.ai_generated is False

    @pytest.mark.asyncio
    async def test_link_must_appear(self):
        generator = FakeTextGenerator({'meeting_response': "Please book any slot on my calendar page."})

        response = await selector(generator, links=FakeLinks(LINK)).respond(request(), "user-1")

        assert response.ai_generated is False
        assert LINK in response.text

    def test_validate_word_budget(self):
        content = ResponseContentGenerator(config=ResponseConfig(max_words=10))
        context = ResponseContext(request(), ResponseStrategy.REQUEST_MORE_INFO, SenderRelationship.STRANGER)

        with pytest.raises(ResponseGenerationError):
            content.validate("word " * 11, context)

    def test_validate_placeholder(self):
        content = ResponseContentGenerator()
        context = ResponseContext(request(), ResponseStrategy.REQUEST_MORE_INFO, SenderRelationship.STRANGER)

        with pytest.raises(ResponseGenerationError):
            content.validate("Hi [Recipient Name], what times suit you next week?", context)

    def test_format_when(self):
        assert format_when(aware(LA, 2030, 3, 5, 9, 30)) == "Tuesday, March 5 at 9:30 AM PST"
