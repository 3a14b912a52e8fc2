"""
Database connection management for TalkBridge.

Provides engine construction, session factories and transaction helpers.
Engines are built lazily on first use so importing the package never opens
a connection; components receive a ``Session`` or a session factory
explicitly instead of reaching for a module global.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Generator, Optional

from sqlalchemy import JSON, Engine, create_engine, event, text
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from talkbridge.config import Settings, settings
from talkbridge.models.db import Base

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

_engine: Optional[Engine] = None
_background_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None
_background_session_factory: Optional[sessionmaker] = None


@event.listens_for(Base.metadata, "before_create")
def _set_json_type(target, connection, **kw):  # pragma: no cover - compat hook
    """Replace JSONB with JSON when creating tables on SQLite."""
    if connection.dialect.name != "sqlite":
        return
    for table in target.tables.values():
        for column in table.columns:
            if isinstance(column.type, postgresql.JSONB):
                column.type = JSON()


def build_engine(database_url: str, background: bool = False, config: Optional[Settings] = None) -> Engine:
    """
    Create an engine for a database URL.

    Args:
        database_url: SQLAlchemy database URL
        background: Use NullPool so background workers never compete with
            API requests for pooled connections
        config: Settings used for pool sizing

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    config = config or settings

    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
            pool_pre_ping=True,
        )

    if background:
        return create_engine(database_url, echo=False, poolclass=NullPool)

    return create_engine(
        database_url,
        echo=False,
        pool_size=config.db_pool_size,
        max_overflow=config.db_pool_max_overflow,
        pool_pre_ping=True,
        pool_timeout=config.db_pool_timeout,
        pool_recycle=config.db_pool_recycle,
    )


def get_engine() -> Engine:
    """Get (and lazily create) the pooled engine used by the API."""
    global _engine
    if _engine is None:
        _engine = build_engine(settings.database_url)
    return _engine


def get_background_engine() -> Engine:
    """Get (and lazily create) the engine used by queue workers."""
    global _background_engine
    if _background_engine is None:
        if settings.database_url.startswith("sqlite"):
            _background_engine = get_engine()
        else:
            _background_engine = build_engine(settings.database_url, background=True)
    return _background_engine


def get_session_factory() -> sessionmaker:
    """Session factory for API requests (pooled connections)."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_factory


def get_background_session_factory() -> sessionmaker:
    """Session factory for background workers (NullPool on PostgreSQL)."""
    global _background_session_factory
    if _background_session_factory is None:
        _background_session_factory = sessionmaker(
            autocommit=False, autoflush=False, bind=get_background_engine()
        )
    return _background_session_factory


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI to get database sessions with automatic cleanup.

    Yields:
        Session: A SQLAlchemy session
    """
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def db_session(factory: Optional[SessionFactory] = None) -> Generator[Session, None, None]:
    """
    Context manager for database sessions with automatic cleanup.

    Args:
        factory: Session factory to use (defaults to the API factory)

    Yields:
        Session: A SQLAlchemy session, committed on success and rolled
        back on error
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """
    Create all tables.

    Args:
        engine: Engine to create the schema on (defaults to the API engine)
    """
    Base.metadata.create_all(bind=engine or get_engine())


def check_connection(factory: Optional[SessionFactory] = None) -> bool:
    """
    Check if database connection is working.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        with db_session(factory) as db:
            db.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
