"""
Database connection and session management
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ..utils.config import ConfigDefaults, DatabaseConfig
from ..utils.logger import setup_logger
from .models import Base

logger = setup_logger(__name__)

# Lazy-loaded engine and session factory
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def get_database_url(config: Optional[DatabaseConfig] = None) -> str:
    """
    Resolve the database URL: DATABASE_URL env var, then config, then SQLite.
    """
    load_dotenv(override=False)
    db_url = os.getenv('DATABASE_URL')
    if db_url:
        return db_url
    if config and config.url:
        return config.url
    return ConfigDefaults.DATABASE_URL_DEFAULT


def _ensure_sqlite_directory(url: str) -> None:
    if ":///" not in url:
        return
    path = url.split(":///", 1)[1]
    if path and not path.startswith(":memory:"):
        Path(path).parent.mkdir(parents=True, exist_ok=True)


def create_db_engine(url: str, echo: bool = False, pool_size: int = ConfigDefaults.DATABASE_POOL_SIZE) -> Engine:
    """
    Create an engine with pooling suited to the backend.

    - SQLite: StaticPool (one shared connection, works for :memory:)
    - PostgreSQL: QueuePool with pre-ping
    """
    if url.startswith('sqlite'):
        _ensure_sqlite_directory(url)
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo
        )
        logger.info("Database engine created: SQLite")
        return engine

    engine = create_engine(
        url,
        pool_size=pool_size,
        max_overflow=pool_size * 2,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
        poolclass=QueuePool,
        echo=echo
    )

    @event.listens_for(engine, "checkout")
    def receive_checkout(dbapi_conn, connection_record, connection_proxy):
        logger.debug("Connection checked out from pool")

    logger.info(f"Database engine created: PostgreSQL (pool_size={pool_size})")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory used by the pipeline; one session per transaction scope."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False
    )


def get_engine(config: Optional[DatabaseConfig] = None) -> Engine:
    """Get or create the process-wide engine (lazy-loaded)"""
    global _engine

    if _engine is None:
        url = get_database_url(config)
        _engine = create_db_engine(
            url,
            echo=config.echo if config else False,
            pool_size=config.pool_size if config else ConfigDefaults.DATABASE_POOL_SIZE
        )
    return _engine


def get_session_local(config: Optional[DatabaseConfig] = None) -> sessionmaker:
    """Get or create the process-wide session factory (lazy-loaded)"""
    global _SessionLocal

    if _SessionLocal is None:
        _SessionLocal = create_session_factory(get_engine(config))
    return _SessionLocal


def init_db(engine: Optional[Engine] = None) -> None:
    """
    Create all tables defined in models.py.

    Raises on failure: the pipeline cannot run without its tables.
    """
    engine = engine or get_engine()
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("[OK] Database tables created successfully")
    except Exception as e:
        logger.error(f"[ERROR] Failed to create database tables: {e}", exc_info=True)
        raise


def close_db_connections() -> None:
    """Dispose of the process-wide engine."""
    global _engine, _SessionLocal

    if _engine is not None:
        _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _SessionLocal = None
