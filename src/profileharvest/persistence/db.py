"""
Database connection and session management.

One synchronous engine per process backs both the key-value store and
the dataset sink. Writes are small and sequential, so the harvest loop
calls into them directly from the event loop.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models import Base

DEFAULT_DATABASE_URL = "sqlite:///data/profileharvest.db"


# =============================================================================
# Global Engine References
# =============================================================================

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


# =============================================================================
# SQLite Configuration
# =============================================================================


def _configure_sqlite(engine: Engine) -> None:
    """Enable WAL mode and full durability on every new SQLite connection.

    A checkpoint must survive a process kill, so synchronous is FULL
    rather than NORMAL.
    """
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=FULL")
        cursor.close()


def create_db_engine(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> Engine:
    """Create a new engine without touching the process-wide one."""
    if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
        db_path = url.replace("sqlite:///", "")
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        _configure_sqlite(engine)
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
        )
    return engine


# =============================================================================
# Engine Creation
# =============================================================================


def get_engine(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> Engine:
    """Get or create the process-wide database engine.

    Args:
        url: SQLAlchemy database URL
        echo: Whether to log SQL statements

    Returns:
        SQLAlchemy Engine instance
    """
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    _engine = create_db_engine(url, echo=echo)
    _session_factory = sessionmaker(
        bind=_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    return _engine


# =============================================================================
# Session Management
# =============================================================================


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session that commits on success.

    Usage:
        with get_session() as session:
            session.execute(...)
    """
    if _session_factory is None:
        get_engine()

    assert _session_factory is not None
    session = _session_factory()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_sync_session() -> Session:
    """Get a raw session; the caller commits, rolls back and closes it."""
    if _session_factory is None:
        get_engine()

    assert _session_factory is not None
    return _session_factory()


# =============================================================================
# Database Initialization
# =============================================================================


def init_db(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> None:
    """Create all tables that don't exist yet."""
    engine = get_engine(url, echo=echo)
    Base.metadata.create_all(bind=engine)


def dispose_engine() -> None:
    """Dispose of the process-wide engine. Call on shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None
