"""
Database engine and session management.

Provides:
- create_db_engine() for SQLite and PostgreSQL URLs
- SessionLocal factory bound to the configured engine
- get_db() dependency for FastAPI request-scoped sessions
- get_db_context() for scripts and background sweeps
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from arena_scheduler.config import get_settings

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine configured for the database behind ``database_url``.

    SQLite enforces foreign keys on every connection. Only in-memory SQLite
    shares a single connection; file databases get one connection per
    thread so concurrent rental admissions run in separate transactions.
    PostgreSQL uses a pre-pinged connection pool.
    """
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False, "timeout": 30}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            options["poolclass"] = StaticPool

        engine = create_engine(database_url, echo=echo, **options)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        database_url,
        pool_size=5,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=echo,
    )


settings = get_settings()

if settings.is_production:
    settings.validate_production_config()

engine = create_db_engine(settings.database_url, echo=settings.log_level == "DEBUG")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Session scope for code running outside a request.

    Commits when the block exits cleanly, rolls back otherwise:

        with get_db_context() as db:
            expire_lapsed_holds(db)
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request."""
    with get_db_context() as db:
        yield db


def init_db() -> None:
    """Create all tables. Development and tests only; production runs Alembic."""
    from arena_scheduler.models.base import Base

    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")


def drop_all_tables() -> None:
    """Drop all tables, deleting every facility, program and rental."""
    from arena_scheduler.models.base import Base

    logger.warning("Dropping all database tables...")
    Base.metadata.drop_all(bind=engine)
    logger.info("All database tables dropped")


def check_connection(db: Optional[Session] = None) -> bool:
    """
    Run ``SELECT 1`` on ``db`` or, if omitted, on a fresh session.

    Returns:
        True if the database answered, False otherwise
    """
    try:
        if db is not None:
            db.execute(text("SELECT 1"))
        else:
            with get_db_context() as fresh:
                fresh.execute(text("SELECT 1"))
        logger.debug("Database connection successful")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        return False
