"""Database engine and session management."""
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .config import Settings


def build_engine(settings: Settings) -> Engine:
    """
    Create the SQLAlchemy engine for the configured database.

    Args:
        settings: Application settings

    Returns:
        Engine bound to ``settings.database_url``
    """
    if settings.database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if settings.database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
        engine = create_engine(settings.database_url, **kwargs)
        enable_sqlite_transactions(engine)
        return engine

    # Conservative pool settings, one logical transaction per request
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,          # Verify connections before using
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=3600,           # Recycle connections every hour
        pool_timeout=settings.db_pool_timeout,
    )


def enable_sqlite_transactions(engine: Engine) -> None:
    """Make pysqlite honour BEGIN/SAVEPOINT and enforce foreign keys.

    The driver defers BEGIN on its own, which breaks SAVEPOINT handling;
    SQLAlchemy takes over transaction demarcation here.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory used for one session per request."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Dependency function to get database session.

    The session factory lives on the application state, set up by
    ``create_app``.

    Yields:
        Session: SQLAlchemy database session
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
