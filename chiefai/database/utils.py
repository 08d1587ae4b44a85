"""
Database Utilities - session scopes and upserts
"""
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterable, Optional, Type

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from ..utils.logger import setup_logger
from .database import get_session_local

logger = setup_logger(__name__)


# ============================================================================
# SESSION MANAGEMENT
# ============================================================================

@contextmanager
def get_db_context(session_factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for one unit of work.

    Commits when the block finishes, rolls back on any exception and always
    closes the session.

    Usage:
        with get_db_context(factory) as db:
            upsert(db, ProcessingResultRecord, values, ['message_id', 'user_id'])
    """
    factory = session_factory or get_session_local()
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def read_only_session(session_factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """Session for queries; never commits. Loaded objects stay readable after close."""
    factory = session_factory or get_session_local()
    db = factory()
    try:
        yield db
    finally:
        db.close()


# ============================================================================
# UPSERTS
# ============================================================================

def upsert(
    db: Session,
    model: Type[Any],
    values: Dict[str, Any],
    conflict_columns: Iterable[str],
    update_columns: Optional[Iterable[str]] = None
) -> None:
    """
    INSERT ... ON CONFLICT DO UPDATE for PostgreSQL and SQLite.

    Args:
        db: Session whose transaction the statement joins
        model: Mapped class
        values: Column values for the insert
        conflict_columns: Columns of the unique constraint
        update_columns: Columns refreshed on conflict (defaults to all
            non-conflict columns in ``values``)
    """
    dialect = db.get_bind().dialect.name
    if dialect == 'postgresql':
        stmt = postgresql.insert(model).values(**values)
    elif dialect == 'sqlite':
        stmt = sqlite.insert(model).values(**values)
    else:
        raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")

    conflict_columns = list(conflict_columns)
    if update_columns is None:
        update_columns = [key for key in values if key not in conflict_columns]

    stmt = stmt.on_conflict_do_update(
        index_elements=conflict_columns,
        set_={column: stmt.excluded[column] for column in update_columns}
    )
    db.execute(stmt)
