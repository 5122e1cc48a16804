"""Database engine and session management.

- get_engine(): the SQLAlchemy engine for the configured DATABASE_URL
- get_db(): FastAPI dependency for request-scoped sessions
- get_db_session(): context manager for non-request code
- init_database(): create tables at startup

PostgreSQL in production with connection pooling; SQLite for local
development. The engine is created on first use so that tests can point
DATABASE_URL elsewhere and call reset_engine().
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

log = logging.getLogger(__name__)

_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def _engine_kwargs(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {
            "echo": False,
            "pool_pre_ping": True,
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "echo": False,
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 1800,
    }


def _redacted(database_url: str) -> str:
    return database_url.split("@")[-1] if "@" in database_url else database_url


def build_engine(database_url: str) -> Engine:
    """Create an engine, with SQLite PRAGMAs applied on each connection."""
    engine = create_engine(database_url, **_engine_kwargs(database_url))

    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            # foreign_keys makes the submissions cascade work
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

        log.info("Using SQLite database (local development mode)")
    else:
        log.info("Using PostgreSQL database (production mode)")

    return engine


def get_engine() -> Engine:
    global _engine, _session_factory

    if _engine is None:
        from catalogue_console.config import DATABASE_URL

        _engine = build_engine(DATABASE_URL)
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)

    return _engine


def _sessions() -> sessionmaker:
    get_engine()
    return _session_factory


def reset_engine() -> None:
    """Dispose the engine (for testing)."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency for database sessions.

    Usage:
        @router.get("/forms")
        def list_forms(db: Session = Depends(get_db)):
            ...
    """
    db = _sessions()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Session committed on success and rolled back on exception."""
    db = _sessions()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_database() -> None:
    """Create all tables (idempotent).

    For SQLite file databases the parent directory is created first.
    """
    from catalogue_console.config import DATABASE_URL
    from catalogue_console.db.models import Base

    log.info(f"Initializing database at {_redacted(DATABASE_URL)}")

    if DATABASE_URL.startswith("sqlite:///"):
        db_path = DATABASE_URL.replace("sqlite:///", "")
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    Base.metadata.create_all(bind=get_engine())
    log.info("Database tables created successfully")
