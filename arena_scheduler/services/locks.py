"""
Per-facility admission locks.

Booking admission is scan-then-write; two requests for the same facility must
not both pass the scan before either commits. ``facility_lock`` serializes
them:
- PostgreSQL: ``SELECT ... FOR UPDATE`` on the facility row, held until the
  surrounding transaction ends
- Every dialect: a process-local lock per facility id (the only exclusion
  SQLite offers)
"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Generator, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from arena_scheduler.models.facilities import Facility

logger = logging.getLogger(__name__)

_registry_guard = threading.Lock()
_facility_locks: dict[UUID, threading.Lock] = defaultdict(threading.Lock)


def is_postgres(session: Session) -> bool:
    """Check if the session is bound to PostgreSQL."""
    bind = session.get_bind()
    return bind.dialect.name == "postgresql"


def _process_lock(facility_id: UUID) -> threading.Lock:
    with _registry_guard:
        return _facility_locks[facility_id]


def lock_facility_row(session: Session, facility_id: UUID) -> Optional[Facility]:
    """
    Load a facility, row-locking it on PostgreSQL.

    Args:
        session: Database session (a transaction is begun if none is active)
        facility_id: Facility to lock

    Returns:
        The facility, or None if it does not exist
    """
    stmt = select(Facility).where(Facility.id == facility_id)
    if is_postgres(session):
        stmt = stmt.with_for_update()
    return session.scalars(stmt).first()


@contextmanager
def facility_lock(session: Session, facility_id: UUID) -> Generator[None, None, None]:
    """
    Hold exclusive admission rights on a facility.

    The caller must commit (or flush inside its own transaction) before the
    block exits so the next holder's scan sees the new booking.

    Usage:
        with facility_lock(db, facility_id):
            validate_booking(...)
            db.add(rental)
            db.commit()
    """
    lock = _process_lock(facility_id)
    with lock:
        logger.debug(f"Acquired admission lock for facility {facility_id}")
        lock_facility_row(session, facility_id)
        yield
