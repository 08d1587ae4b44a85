"""
Database models and session management for the meeting pipeline

Main exports:
- Base: SQLAlchemy declarative base for all models
- Models: MeetingRequestRecord, MeetingResponseDraft, ProcessingResultRecord, UserTimezone, TimezoneChangeLog
- Engine/session: create_db_engine, create_session_factory, get_engine, get_session_local, init_db
- Utilities: get_db_context, read_only_session, upsert
"""

from .models import (
    Base,
    MeetingRequestRecord,
    MeetingResponseDraft,
    ProcessingResultRecord,
    UserTimezone,
    TimezoneChangeLog,
)
from .database import (
    create_db_engine,
    create_session_factory,
    get_engine,
    get_session_local,
    init_db,
    close_db_connections,
)
from .utils import get_db_context, read_only_session, upsert

__all__ = [
    # Base
    'Base',
    # Models
    'MeetingRequestRecord',
    'MeetingResponseDraft',
    'ProcessingResultRecord',
    'UserTimezone',
    'TimezoneChangeLog',
    # Engine / sessions
    'create_db_engine',
    'create_session_factory',
    'get_engine',
    'get_session_local',
    'init_db',
    'close_db_connections',
    # Utilities
    'get_db_context',  # Commit-or-rollback unit of work
    'read_only_session',
    'upsert',  # Dialect-aware INSERT ... ON CONFLICT DO UPDATE
]
