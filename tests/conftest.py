"""
Pytest configuration and fixtures for Arena Scheduler tests.

Provides database session fixtures, UTC settings and sample data.
"""

from datetime import date, datetime, time, timezone
from typing import Generator

import pytest
import sqlalchemy as sa
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from arena_scheduler.config import Settings, get_settings
from arena_scheduler.models.base import Base
from arena_scheduler.models.facilities import Facility
from arena_scheduler.models.programs import Program
from arena_scheduler.models.rentals import FacilityRental


# Configure SQLite to enforce foreign key constraints in tests
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Fixed "current time" for hold evaluation
NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def utc_settings(monkeypatch) -> Generator[Settings, None, None]:
    """
    Run every test with UTC facility time and no global operating hours.

    Clears the settings cache so code calling get_settings() sees the same
    values as tests that pass settings explicitly.
    """
    monkeypatch.setenv("TIMEZONE", "UTC")
    monkeypatch.setenv("RENTAL_HOLD_MINUTES", "15")
    monkeypatch.delenv("DEFAULT_OPEN_TIME", raising=False)
    monkeypatch.delenv("DEFAULT_CLOSE_TIME", raising=False)
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def settings(utc_settings: Settings) -> Settings:
    return utc_settings


@pytest.fixture(scope="function")
def db_engine() -> Generator[Engine, None, None]:
    """
    In-memory SQLite engine shared across threads.

    StaticPool keeps a single connection so TestClient worker threads see
    the same database as the test.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    # Disable foreign key constraints for drop operations
    with engine.begin() as connection:
        connection.execute(sa.text("PRAGMA foreign_keys=OFF"))
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine: Engine) -> Generator[Session, None, None]:
    """
    Create a clean database session for each test.

    Yields:
        Session: SQLAlchemy session for database operations
    """
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def court(db_session: Session) -> Facility:
    """
    A bookable court with 30-120 minute rentals and no opening hours.

    Returns:
        Facility: A persisted facility
    """
    facility = Facility(
        name="Court 1",
        description="Full-size indoor court",
        facility_type="court",
        bookable=True,
        allow_clashes=False,
        min_booking_duration_minutes=30,
        max_booking_duration_minutes=120,
    )
    db_session.add(facility)
    db_session.commit()
    db_session.refresh(facility)
    return facility


@pytest.fixture
def field_house(db_session: Session) -> Facility:
    """A facility open 08:00-22:00."""
    facility = Facility(
        name="Field House",
        facility_type="field",
        min_booking_duration_minutes=60,
        max_booking_duration_minutes=240,
        open_time=time(8, 0),
        close_time=time(22, 0),
    )
    db_session.add(facility)
    db_session.commit()
    db_session.refresh(facility)
    return facility


@pytest.fixture
def weekly_program(court: Facility) -> Program:
    """
    Unsaved Monday/Wednesday clinic on Court 1 for four weeks of March 2026.

    2026-03-02 is a Monday.
    """
    return Program(
        name="Youth Skills Clinic",
        program_type="clinic",
        capacity=16,
        price=120.0,
        allow_drop_in=True,
        drop_in_price=20.0,
        start_date=date(2026, 3, 2),
        end_date=date(2026, 3, 29),
        start_time=time(17, 0),
        end_time=time(18, 30),
        repeats=True,
        frequency="weekly",
        days_of_week=["mon", "wed"],
        recurrence_ends="never",
        custom_sessions=False,
        facility_id=court.id,
    )


def make_rental(
    db_session: Session,
    facility: Facility,
    start: datetime,
    end: datetime,
    status: str = "confirmed",
    hold_expires_at: datetime = None,
) -> FacilityRental:
    """Persist a rental directly, bypassing admission checks."""
    rental = FacilityRental(
        facility_id=facility.id,
        customer_ref="cust-1",
        start_time=start,
        end_time=end,
        status=status,
        hold_expires_at=hold_expires_at,
    )
    db_session.add(rental)
    db_session.commit()
    db_session.refresh(rental)
    return rental


@pytest.fixture
def rental_factory(db_session: Session):
    """Factory fixture creating persisted rentals."""

    def _make(facility, start, end, status="confirmed", hold_expires_at=None):
        return make_rental(db_session, facility, start, end, status, hold_expires_at)

    return _make
