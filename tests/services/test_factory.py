"""
Tests for pipeline wiring
"""
import pytest
from unittest.mock import patch

from chiefai.ai.llm_factory import LangChainTextGenerator
from chiefai.services.factory import create_meeting_pipeline, create_text_generator
from chiefai.services.meetings.models import ProcessingStatus
from chiefai.utils.config import AIConfig, Config
from chiefai.utils.locks import InMemoryLockService

from conftest import USER_ID, FakeLinks, make_message


class TestCreateTextGenerator:

    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="api_key"):
            create_text_generator(Config(ai=AIConfig(api_key=None)))

    def test_builds_langchain_generator(self, test_config):
        assert isinstance(create_text_generator(test_config), LangChainTextGenerator)


class TestCreateMeetingPipeline:

    def test_stages_share_configuration(self, test_config, session_factory, calendar, email, text_generator):
        links = FakeLinks("https://calendly.com/me")
        locks = InMemoryLockService()

        pipeline = create_meeting_pipeline(
            test_config, email, calendar,
            text_generator=text_generator,
            links=links,
            session_factory=session_factory,
            lock_service=locks,
        )

        assert pipeline.guard.locks is locks
        assert pipeline.guard.ttl_seconds == test_config.redis.lock_ttl_seconds
        assert pipeline.extractor.text_generator is text_generator
        assert pipeline.availability.calendar is calendar
        assert pipeline.availability.config is test_config.availability
        assert pipeline.responder.links is links
        assert pipeline.config is test_config
        assert pipeline.email is email

    @pytest.mark.asyncio
    async def test_wired_pipeline_processes_a_message(self, test_config, session_factory, calendar, email, text_generator):
        pipeline = create_meeting_pipeline(
            test_config, email, calendar,
            text_generator=text_generator,
            session_factory=session_factory,
            lock_service=InMemoryLockService(),
        )

        result = await pipeline.process_message(make_message("Can we meet tomorrow at 2pm?"), USER_ID)

        assert result.status is ProcessingStatus.PROCESSED

    def test_logging_configured_from_config(self, test_config, session_factory, calendar, email, text_generator, tmp_path):
        test_config.logging.level = "DEBUG"
        test_config.logging.file = str(tmp_path / "logs" / "pipeline.log")

        with patch('chiefai.services.factory.configure_logging') as configure:
            create_meeting_pipeline(
                test_config, email, calendar,
                text_generator=text_generator,
                session_factory=session_factory,
                lock_service=InMemoryLockService(),
            )

        configure.assert_called_once_with("DEBUG", test_config.logging.file)
