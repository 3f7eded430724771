"""
Database engine and sessions for the Back Office service layer.

Every service function takes an optional session. Without one it opens
its own through session_scope(), which commits on success and rolls back
on any exception. Tests swap get_session_factory() for an in-memory one.

SQLite connections get foreign keys enforced and WAL journaling so that
concurrent purchase and order requests can write the same database file.
"""

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from ..models.base import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Enforce foreign keys and enable WAL on SQLite connections only."""
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return

    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create an engine for the configured (or given) database URL.

    In-memory SQLite shares one connection across threads so every session
    sees the same data; file-based SQLite waits up to 30 seconds on a
    locked database. Any other URL gets pre-ping pooling.
    """
    if database_url is None:
        database_url = get_config().database_url

    logger.info(f"Creating database engine: {database_url}")

    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)
    if ":memory:" in database_url or "mode=memory" in database_url:
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        database_url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": 30},
    )


def get_engine() -> Engine:
    """Get the global database engine, creating it on first use."""
    global _engine

    if _engine is None:
        _engine = create_database_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    """Get the global session factory, bound to get_engine()."""
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _SessionFactory


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Provide a transactional scope for database operations.

    Example:
        with session_scope() as session:
            session.add(Business(name="Cafe Central"))
            # Commit happens automatically if no exception
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


def init_database(engine: Optional[Engine] = None) -> None:
    """Create any missing tables. Existing tables are left as they are."""
    if engine is None:
        engine = get_engine()

    # Register every model with Base before creating tables
    from .. import models  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info("Database tables initialized successfully")


def missing_tables(engine: Optional[Engine] = None) -> List[str]:
    """Names of mapped tables that the database does not have."""
    if engine is None:
        engine = get_engine()
    existing = set(inspect(engine).get_table_names())
    return sorted(name for name in Base.metadata.tables if name not in existing)


def initialize_app_database() -> None:
    """
    Create the application database and its tables if they don't exist.

    Logs a warning listing any table that is still missing afterwards.
    """
    config = get_config()

    if not config.database_exists():
        logger.info(f"Creating new database at: {config.database_path}")
    else:
        logger.info(f"Using database: {config.database_url}")

    engine = get_engine()
    init_database(engine)

    missing = missing_tables(engine)
    if missing:
        logger.warning(f"Database verification failed - missing tables: {', '.join(missing)}")
    else:
        logger.info("Database initialized and verified successfully")
