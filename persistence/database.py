"""
Ledger Database

SQLite engine and sessions for the vote/game ledger. The daemon is the
only writer; `snake history` and the status app open the same file from
other processes, so connections use WAL and a busy timeout.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_MS = 5000

_engine = None
_SessionFactory = None


def get_database_url() -> str:
    """stats.db under the data directory"""
    # Import here to avoid circular imports
    from config import config
    config.ensure_dirs()
    return config.DATABASE_URL


def _is_file_backed(database_url: str) -> bool:
    return database_url.startswith('sqlite:///') and database_url != 'sqlite:///:memory:'


def init_db(database_url: Optional[str] = None) -> None:
    """
    Open (and create if needed) the ledger.

    Args:
        database_url: SQLAlchemy URL; defaults to stats.db in the data dir.
            Calling again with another URL switches the ledger over.
    """
    global _engine, _SessionFactory

    if database_url is None:
        database_url = get_database_url()
    if _engine is not None:
        _engine.dispose()

    logger.info(f"📒 Opening ledger at: {database_url}")

    _engine = create_engine(
        database_url,
        echo=False,
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )

    if _is_file_backed(database_url):
        @event.listens_for(_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
            cursor.close()

    Base.metadata.create_all(_engine)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)


def get_session() -> Session:
    """New session; opens the default ledger on first use"""
    if _SessionFactory is None:
        init_db()
    return _SessionFactory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Commit on success, roll back and re-raise on error.

    Usage:
        with session_scope() as session:
            session.add(vote)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Ledger write failed, rolling back: {e}")
        raise
    finally:
        session.close()


def close_db():
    """Dispose the engine; the next get_session() reopens the default ledger"""
    global _engine, _SessionFactory

    if _engine:
        _engine.dispose()
        _engine = None
        _SessionFactory = None
        logger.debug("Ledger closed")
