"""
Query service for facilities, rentals and sessions.

Provides the select statements the scheduling engine runs:
- Facility lookup
- Counted rentals overlapping a time window
- Sessions on a facility for a calendar date
- Sessions owned by a program
"""

from datetime import date, datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select, and_, or_
from sqlalchemy.orm import Session

from arena_scheduler.models.facilities import Facility
from arena_scheduler.models.programs import Program, ProgramSession
from arena_scheduler.models.rentals import FacilityRental


# =============================================================================
# Facility & Program Queries
# =============================================================================


def get_facility_by_id(session: Session, facility_id: UUID) -> Optional[Facility]:
    """
    Get a facility by ID.

    Args:
        session: Database session
        facility_id: Facility ID

    Returns:
        Facility or None if not found
    """
    return session.get(Facility, facility_id)


def get_program_by_id(session: Session, program_id: UUID) -> Optional[Program]:
    """Get a program by ID, or None."""
    return session.get(Program, program_id)


def get_rental_by_id(session: Session, rental_id: UUID) -> Optional[FacilityRental]:
    """Get a rental by ID, or None."""
    return session.get(FacilityRental, rental_id)


# =============================================================================
# Rental Queries
# =============================================================================


def get_counted_rentals_in_range(
    session: Session,
    facility_id: UUID,
    start: datetime,
    end: datetime,
    now: datetime,
    exclude_rental_id: Optional[UUID] = None,
) -> Sequence[FacilityRental]:
    """
    Get rentals occupying a facility that overlap ``[start, end)``.

    A rental is counted when it is confirmed, or pending with a hold that is
    still live at ``now``. Overlap is half-open: touching intervals are not
    returned.

    Args:
        session: Database session
        facility_id: Facility to scan
        start: Candidate start
        end: Candidate end
        now: Instant at which hold expiry is evaluated
        exclude_rental_id: Rental to ignore (for re-validation of an existing rental)

    Returns:
        Overlapping counted rentals ordered by start time
    """
    conditions = [
        FacilityRental.facility_id == facility_id,
        or_(
            FacilityRental.status == "confirmed",
            and_(
                FacilityRental.status == "pending",
                FacilityRental.hold_expires_at > now,
            ),
        ),
        FacilityRental.start_time < end,
        FacilityRental.end_time > start,
    ]

    if exclude_rental_id:
        conditions.append(FacilityRental.id != exclude_rental_id)

    stmt = (
        select(FacilityRental)
        .where(and_(*conditions))
        .order_by(FacilityRental.start_time)
    )

    return session.scalars(stmt).all()


def get_lapsed_holds(session: Session, now: datetime) -> Sequence[FacilityRental]:
    """Get pending rentals whose hold expired at or before ``now``."""
    stmt = select(FacilityRental).where(
        and_(
            FacilityRental.status == "pending",
            FacilityRental.hold_expires_at.is_not(None),
            FacilityRental.hold_expires_at <= now,
        )
    )
    return session.scalars(stmt).all()


# =============================================================================
# Session Queries
# =============================================================================


def get_sessions_on_date(
    session: Session,
    facility_id: UUID,
    on_date: date,
    exclude_session_id: Optional[UUID] = None,
) -> Sequence[ProgramSession]:
    """
    Get program sessions held at a facility on a calendar date.

    Args:
        session: Database session
        facility_id: Facility to scan
        on_date: Calendar date
        exclude_session_id: Session to ignore

    Returns:
        Sessions ordered by start time
    """
    conditions = [
        ProgramSession.facility_id == facility_id,
        ProgramSession.date == on_date,
    ]

    if exclude_session_id:
        conditions.append(ProgramSession.id != exclude_session_id)

    stmt = (
        select(ProgramSession)
        .where(and_(*conditions))
        .order_by(ProgramSession.start_time)
    )

    return session.scalars(stmt).all()


def get_program_sessions(session: Session, program_id: UUID) -> Sequence[ProgramSession]:
    """
    Get all sessions owned by a program.

    Args:
        session: Database session
        program_id: Owning program

    Returns:
        Sessions ordered by date and start time
    """
    stmt = (
        select(ProgramSession)
        .where(ProgramSession.program_id == program_id)
        .order_by(ProgramSession.date, ProgramSession.start_time)
    )

    return session.scalars(stmt).all()
