"""Database session factory and configuration.

Provides database connectivity and session management for the matching
workers. The engine is created lazily so that importing models or workers
never opens a connection.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .config import get_settings

# Session factory, bound to an engine on first use (see init_engine)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
)

_engine: Optional[Engine] = None


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let pysqlite honour SAVEPOINT / nested transactions.

    pysqlite defers BEGIN until the first DML statement, which breaks
    Session.begin_nested(). Take over transaction control instead.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str) -> Engine:
    """Create an engine with connection pooling appropriate for the backend.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    engine_kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": False,
    }

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://"):
            engine_kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **engine_kwargs)
        _enable_sqlite_savepoints(engine)
        return engine

    # Pool settings only apply to server databases
    engine_kwargs["pool_size"] = 5
    engine_kwargs["max_overflow"] = 10
    return create_engine(database_url, **engine_kwargs)


def init_engine(database_url: Optional[str] = None) -> Engine:
    """Create (or replace) the process-wide engine and bind SessionLocal.

    Args:
        database_url: Override for settings.DATABASE_URL

    Returns:
        Engine: The bound engine
    """
    global _engine
    _engine = build_engine(database_url or get_settings().DATABASE_URL)
    SessionLocal.configure(bind=_engine)
    return _engine


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""
    if _engine is None:
        return init_engine()
    return _engine


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.query(Offer).all()

    Automatically commits on success, rolls back on exception.
    """
    get_engine()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
