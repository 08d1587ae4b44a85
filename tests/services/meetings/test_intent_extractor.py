"""
Tests for MeetingIntentExtractor
"""
import asyncio

import pytest

from chiefai.services.meetings.intent_extractor import (
    REASON_BULK,
    REASON_LOW_CONFIDENCE,
    REASON_NO_LANGUAGE,
    REASON_NOT_MEETING,
    REASON_UNAVAILABLE,
    MeetingIntentExtractor,
    classify_urgency,
    parse_confidence,
    parse_duration,
    parse_location,
)
from chiefai.services.meetings.filters import has_meeting_language
from chiefai.services.meetings.models import MeetingCategory, UrgencyLevel
from chiefai.utils.config import DetectionConfig

from conftest import MEETING_JSON, NOT_MEETING_JSON, FakeTextGenerator, make_message


def extractor_for(reply, **config):
    generator = FakeTextGenerator({'meeting_detection': reply})
    return MeetingIntentExtractor(generator, DetectionConfig(**config), timeout_seconds=0.5), generator


class TestAnalyze:
    """Meeting detection outcomes"""

    @pytest.mark.asyncio
    async def test_meeting_request_built(self):
        extractor, _ = extractor_for(MEETING_JSON)
        message = make_message(
            "Hi! Could we meet tomorrow at 2pm on Zoom? Please loop in sam@partner.com too.",
            subject="Project sync",
        )

        outcome = await extractor.analyze(message)

        request = outcome.meeting_request
        assert outcome.is_meeting
        assert request.confidence == 90
        assert request.sender == "dana@partner.com"
        assert request.sender_name == "Dana Smith"
        assert request.location == "Zoom"
        assert request.attendees == ("sam@partner.com",)
        assert request.purpose == "project sync"
        assert request.has_concrete_time
        assert request.duration_minutes == 60

    @pytest.mark.asyncio
    async def test_below_threshold_rejected(self):
        """Confidence under min_confidence is not a meeting"""
        extractor, _ = extractor_for('{"is_meeting_request": true, "confidence": 0.55}')

        outcome = await extractor.analyze(make_message("Maybe we could meet sometime?"))

        assert not outcome.is_meeting
        assert outcome.confidence == 55
        assert outcome.reason == REASON_LOW_CONFIDENCE

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self):
        extractor, _ = extractor_for('{"is_meeting_request": true, "confidence": 60}')

        outcome = await extractor.analyze(make_message("Can we meet tomorrow at 3pm?"))

        assert outcome.is_meeting

    @pytest.mark.asyncio
    async def test_not_a_meeting(self):
        extractor, _ = extractor_for(NOT_MEETING_JSON)

        outcome = await extractor.analyze(make_message("Your calendar export is available"))

        assert not outcome.is_meeting
        assert outcome.reason == REASON_NOT_MEETING
        assert outcome.failed is False

    @pytest.mark.asyncio
    async def test_bulk_filtered_before_model(self):
        """Promotional mail never reaches the model"""
        extractor, generator = extractor_for(MEETING_JSON)
        message = make_message(
            "Book a demo call with our team today!",
            sender="Deals <deals@shop.example.com>",
            headers={"List-Unsubscribe": "<mailto:unsub@shop.example.com>"},
        )

        outcome = await extractor.analyze(message)

        assert outcome.reason == REASON_BULK
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_excluded_category(self):
        extractor, generator = extractor_for(MEETING_JSON)
        message = make_message("Join our webinar call", categories=("promotions",))

        assert (await extractor.analyze(message)).reason == REASON_BULK
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_no_reply_sender(self):
        extractor, _ = extractor_for(MEETING_JSON)
        message = make_message("Meeting reminder", sender="no-reply@service.example.com")

        assert (await extractor.analyze(message)).reason == REASON_BULK

    @pytest.mark.asyncio
    async def test_no_scheduling_language(self):
        extractor, generator = extractor_for(MEETING_JSON)

        outcome = await extractor.analyze(make_message("Thanks, the invoice looks right.", subject="Invoice"))

        assert outcome.reason == REASON_NO_LANGUAGE
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_model_failure(self):
        """A failing model is reported, not guessed"""
        extractor, _ = extractor_for(ConnectionError("quota exceeded"))

        outcome = await extractor.analyze(make_message("Can we meet tomorrow at 2pm?"))

        assert outcome.failed is True
        assert outcome.reason == REASON_UNAVAILABLE
        assert outcome.meeting_request is None

    @pytest.mark.asyncio
    async def test_model_timeout(self):
        class SlowGenerator:
            async def generate(self, prompt_context):
                await asyncio.sleep(5)
                return MEETING_JSON

        extractor = MeetingIntentExtractor(SlowGenerator(), DetectionConfig(), timeout_seconds=0.05)

        outcome = await extractor.analyze(make_message("Can we meet tomorrow at 2pm?"))

        assert outcome.failed is True

    @pytest.mark.asyncio
    async def test_unparseable_reply(self):
        extractor, _ = extractor_for("I think this is a meeting request.")

        outcome = await extractor.analyze(make_message("Can we meet tomorrow at 2pm?"))

        assert outcome.failed is True

    @pytest.mark.asyncio
    async def test_duration_from_range(self):
        extractor, _ = extractor_for(MEETING_JSON)

        request = await extractor.detect(make_message("Are you free for a call 2-3:30pm on Friday?"))

        assert request.duration_minutes == 90

    @pytest.mark.asyncio
    async def test_duration_from_lunchtime_range(self):
        extractor, _ = extractor_for(MEETING_JSON)

        request = await extractor.detect(make_message("Can we meet tomorrow 12-1pm?"))

        assert request.duration_minutes == 60
        assert request.candidate_times[0].hour == 12

    @pytest.mark.asyncio
    async def test_detect_returns_none_for_non_meetings(self):
        extractor, _ = extractor_for(NOT_MEETING_JSON)
        assert await extractor.detect(make_message("Let's talk about the invoice")) is None


class TestSlotParsers:

    @pytest.mark.parametrize("text,expected", [
        ("a 30 minute call", 30),
        ("1.5 hours should do", 90),
        ("half an hour", 30),
        ("quick chat", 15),
        ("let's meet", 60),
    ])
    def test_parse_duration(self, text, expected):
        assert parse_duration(text, 60) == expected

    def test_parse_location(self):
        assert parse_location("happy to do Google Meet") == "Google Meet"
        assert parse_location("let's meet in person") == "In person"
        assert parse_location("let's meet") is None

    def test_classify_urgency(self):
        assert classify_urgency("need this ASAP") is UrgencyLevel.HIGH
        assert classify_urgency("no rush at all") is UrgencyLevel.LOW
        assert classify_urgency("let's meet", "low") is UrgencyLevel.LOW
        assert classify_urgency("let's meet", "weird") is UrgencyLevel.MEDIUM

    @pytest.mark.parametrize("value,expected", [(0.85, 85), (85, 85), ("0.7", 70), (150, 100), (None, 0), ("x", 0)])
    def test_parse_confidence(self, value, expected):
        assert parse_confidence(value) == expected

    @pytest.mark.asyncio
    async def test_category(self):
        extractor, _ = extractor_for(MEETING_JSON)
        request = await extractor.detect(make_message("Can we set up a weekly sync on Monday at 10am?"))
        assert request.category is MeetingCategory.RECURRING


class TestMeetingLanguage:
    """Keyword prefilter matches whole words only"""

    @pytest.mark.parametrize("text", [
        "Can we meet?",
        "Two calls this week",
        "It's scheduled for Friday",
        "Are you booking the room?",
        "Meetings all afternoon",
    ])
    def test_keywords_and_inflections(self, text):
        assert has_meeting_language(text) is True

    @pytest.mark.parametrize("text", [
        "Bookkeeping invoice attached",
        "Our freelance rates for 2030",
        "Callback URL updated",
        "",
    ])
    def test_words_containing_keywords(self, text):
        assert has_meeting_language(text) is False
