"""
Integration test fixtures for Arena Scheduler.

Runs the full HTTP -> service -> database path against an in-memory
database with the facility timezone set to America/Los_Angeles.
"""

from datetime import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from arena_scheduler.api.dependencies import get_db_session
from arena_scheduler.api.main import app
from arena_scheduler.config import get_settings
from arena_scheduler.models.facilities import Facility


# =============================================================================
# Pytest Markers Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


@pytest.fixture(autouse=True)
def pacific_settings(utc_settings, monkeypatch):
    """Override the UTC default: integration runs use a real facility timezone."""
    monkeypatch.setenv("TIMEZONE", "America/Los_Angeles")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def gym(db_session) -> Facility:
    """Main gym: 60-180 minute rentals, open 06:00-22:00 local."""
    facility = Facility(
        name="Main Gym",
        facility_type="gym",
        min_booking_duration_minutes=60,
        max_booking_duration_minutes=180,
        open_time=time(6, 0),
        close_time=time(22, 0),
    )
    db_session.add(facility)
    db_session.commit()
    db_session.refresh(facility)
    return facility


@pytest.fixture
def api_client(db_engine):
    """TestClient whose requests use the test database."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db_session] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
