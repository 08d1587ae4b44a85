"""
Pipeline factory - wires the meeting pipeline from configuration

Usage:
    config = load_config()
    pipeline = create_meeting_pipeline(config, email=gmail, calendar=gcal)
    result = await pipeline.process_message(message, user_id="user-1")
"""
from typing import Optional

from sqlalchemy.orm import sessionmaker

from ..utils.config import Config
from ..utils.locks import LockService, create_lock_service
from ..utils.logger import configure_logging, setup_logger
from ..database import get_session_local, init_db
from .interfaces import CalendarProvider, EmailProvider, SchedulingLinkProvider, TextGenerator
from .meetings.availability import AvailabilityEvaluator
from .meetings.idempotency import IdempotencyGuard
from .meetings.intent_extractor import MeetingIntentExtractor
from .meetings.pipeline import MeetingPipeline
from .meetings.repository import MeetingRepository
from .meetings.response_content import ResponseContentGenerator
from .meetings.response_strategy import ResponseStrategySelector
from .timezone import TimeZoneResolver, TimezoneStore

logger = setup_logger(__name__)


def create_text_generator(config: Config) -> TextGenerator:
    """
    Gemini-backed generator from ``config.ai``.

    Raises:
        ValueError: no API key configured
    """
    if not config.ai.api_key:
        raise ValueError("config.ai.api_key is required when no text generator is supplied")
    # Deferred so callers that inject a generator never load langchain
    from ..ai.llm_factory import LangChainTextGenerator
    return LangChainTextGenerator(config)


def create_meeting_pipeline(
    config: Config,
    email: Optional[EmailProvider],
    calendar: CalendarProvider,
    text_generator: Optional[TextGenerator] = None,
    links: Optional[SchedulingLinkProvider] = None,
    session_factory: Optional[sessionmaker] = None,
    lock_service: Optional[LockService] = None
) -> MeetingPipeline:
    """
    Build a MeetingPipeline with every stage configured from ``config``.

    Args:
        config: Application configuration
        email: Message fetch and sender-history lookups (optional)
        calendar: Events, tentative bookings and provider timezones
        text_generator: Language model adapter (built from config.ai if None)
        links: Per-user scheduling link lookup (optional)
        session_factory: SQLAlchemy sessionmaker (the configured database if None)
        lock_service: Admission lock backend (from config.redis if None)
    """
    configure_logging(config.logging.level, config.logging.file)
    if session_factory is None:
        session_factory = get_session_local(config.database)
        init_db()
    generator = text_generator or create_text_generator(config)
    locks = lock_service or create_lock_service(config.redis.url, fail_open=config.redis.fail_open)

    resolver = TimeZoneResolver.from_config(config, store=TimezoneStore(session_factory), calendar=calendar)
    extractor = MeetingIntentExtractor(generator, config.detection, timeout_seconds=config.ai.timeout_seconds)
    availability = AvailabilityEvaluator(calendar, config.availability)
    content = ResponseContentGenerator(generator, config.response, timeout_seconds=config.ai.timeout_seconds)
    responder = ResponseStrategySelector(
        content,
        email=email,
        calendar=calendar,
        links=links,
        config=config.response,
        agent=config.agent,
    )
    guard = IdempotencyGuard(locks, ttl_seconds=config.redis.lock_ttl_seconds, prefix=config.redis.key_prefix)

    logger.info(f"[PipelineFactory] Meeting pipeline ready (locks={type(locks).__name__})")
    return MeetingPipeline(
        extractor=extractor,
        resolver=resolver,
        availability=availability,
        responder=responder,
        guard=guard,
        repository=MeetingRepository(session_factory),
        config=config,
        email=email,
    )
