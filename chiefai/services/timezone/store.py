"""
Durable timezone store backed by the relational database
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ...database.models import TimezoneChangeLog, UserTimezone
from ...database.utils import get_db_context, read_only_session
from ...utils.logger import setup_logger

logger = setup_logger(__name__)


class TimezoneStore:
    """Reads and writes ``user_timezones``, auditing every change."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, user_id: str) -> Optional[str]:
        with read_only_session(self._session_factory) as db:
            return db.execute(
                select(UserTimezone.timezone).where(UserTimezone.user_id == user_id)
            ).scalar_one_or_none()

    def save(self, user_id: str, timezone: str, source: str) -> bool:
        """
        Store ``timezone`` for the user.

        Returns:
            True if the stored value changed (a change-log row is written)
        """
        with get_db_context(self._session_factory) as db:
            row = db.get(UserTimezone, user_id)
            old_timezone = row.timezone if row else None
            if old_timezone == timezone:
                return False

            if row is None:
                db.add(UserTimezone(user_id=user_id, timezone=timezone, source=source))
            else:
                row.timezone = timezone
                row.source = source
                row.updated_at = datetime.utcnow()

            db.add(TimezoneChangeLog(
                user_id=user_id,
                old_timezone=old_timezone,
                new_timezone=timezone,
                source=source
            ))

        logger.info(f"[TimezoneStore] {user_id}: {old_timezone} -> {timezone} ({source})")
        return True

    def history(self, user_id: str, limit: int = 20) -> List[TimezoneChangeLog]:
        with read_only_session(self._session_factory) as db:
            return list(db.execute(
                select(TimezoneChangeLog)
                .where(TimezoneChangeLog.user_id == user_id)
                .order_by(TimezoneChangeLog.changed_at.desc(), TimezoneChangeLog.id.desc())
                .limit(limit)
            ).scalars())
