"""
Booking validation service.

Entry point for every rental or operator-created session. Checks run in a
fixed order and the first failure wins:

1. Facility lookup (ResourceNotFound, ResourceNotBookable)
2. Duration bounds (DurationOutOfRange)
3. Operating hours (OutsideOperatingHours)
4. Conflict scan (SchedulingConflict)

``validate_booking`` only reads. ``reserve_rental`` and ``add_custom_session``
run validation and the write inside one per-facility critical section.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from arena_scheduler.config import Settings, get_settings
from arena_scheduler.errors import (
    CustomSessionsDisabled,
    DurationOutOfRange,
    HoldExpired,
    InvalidRentalTransition,
    OutsideOperatingHours,
    RentalNotFound,
    ResourceNotBookable,
    SchedulingError,
)
from arena_scheduler.models.base import utcnow
from arena_scheduler.models.programs import Program, ProgramSession
from arena_scheduler.models.rentals import FacilityRental
from arena_scheduler.services.conflicts import Collision, as_aware, check_conflicts, local_window
from arena_scheduler.services.locks import facility_lock
from arena_scheduler.services.queries import get_lapsed_holds, get_rental_by_id
from arena_scheduler.services.registry import ResourcePolicy, ResourceRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingDecision:
    """Accept/reject verdict for a candidate booking."""

    accepted: bool
    kind: Optional[str] = None
    reason: Optional[str] = None
    collision: Optional[Collision] = None

    @classmethod
    def accept(cls) -> "BookingDecision":
        return cls(accepted=True)

    @classmethod
    def reject(cls, error: SchedulingError) -> "BookingDecision":
        return cls(
            accepted=False,
            kind=error.kind,
            reason=error.message,
            collision=getattr(error, "collision", None),
        )


@dataclass
class RentalRequest:
    """A customer's request to rent a facility."""

    facility_id: UUID
    start_time: datetime
    end_time: datetime
    customer_ref: Optional[str] = None
    confirm: bool = False
    session_date: Optional[date] = None


def check_duration(policy: ResourcePolicy, start: datetime, end: datetime) -> None:
    """
    Enforce the facility's duration bounds.

    Raises:
        DurationOutOfRange: If the booking is too short or too long
    """
    duration_minutes = (end - start).total_seconds() / 60

    if duration_minutes <= 0:
        raise DurationOutOfRange("Booking must end after it starts.", duration_minutes)

    minimum = policy.min_booking_duration_minutes
    if minimum and duration_minutes < minimum:
        raise DurationOutOfRange(
            f"Minimum booking duration for this facility is {minimum} minutes.",
            duration_minutes,
        )

    maximum = policy.max_booking_duration_minutes
    if maximum and duration_minutes > maximum:
        raise DurationOutOfRange(
            f"Maximum booking duration for this facility is {maximum} minutes.",
            duration_minutes,
        )


def check_operating_hours(
    policy: ResourcePolicy,
    start: datetime,
    end: datetime,
    settings: Settings,
) -> None:
    """
    Enforce the facility's open/close times (in facility-local time).

    Raises:
        OutsideOperatingHours: If the booking falls outside opening hours
    """
    if policy.open_time is None and policy.close_time is None:
        return

    window = local_window(start, end, settings.tzinfo)

    if policy.open_time is not None and window.start_time < policy.open_time:
        raise OutsideOperatingHours(
            f"{policy.name} opens at {policy.open_time.strftime('%H:%M')}."
        )

    if policy.close_time is not None and (
        window.spans_midnight or window.end_time > policy.close_time
    ):
        raise OutsideOperatingHours(
            f"{policy.name} closes at {policy.close_time.strftime('%H:%M')}."
        )


def admit_booking(
    session: Session,
    facility_id: UUID,
    start: datetime,
    end: datetime,
    now: Optional[datetime] = None,
    session_date: Optional[date] = None,
    exclude_rental_id: Optional[UUID] = None,
    exclude_session_id: Optional[UUID] = None,
    enforce_duration: bool = True,
    settings: Optional[Settings] = None,
) -> ResourcePolicy:
    """
    Run every booking check, raising the first failure.

    Args:
        session: Database session
        facility_id: Target facility
        start: Candidate start (naive values are facility-local)
        end: Candidate end
        now: Instant for hold evaluation (default: current UTC time)
        session_date: Calendar date for the session-overlap scan
        exclude_rental_id: Rental to ignore in the conflict scan
        exclude_session_id: Session to ignore in the conflict scan
        enforce_duration: Apply the facility's rental duration bounds
        settings: Settings override

    Returns:
        The facility policy the booking was admitted under

    Raises:
        ResourceNotFound, ResourceNotBookable, DurationOutOfRange,
        OutsideOperatingHours, SchedulingConflict
    """
    settings = settings or get_settings()
    now = now or utcnow()
    start = as_aware(start, settings.tzinfo)
    end = as_aware(end, settings.tzinfo)

    policy = ResourceRegistry(session, settings).get_policy(facility_id)

    if not policy.bookable:
        raise ResourceNotBookable(facility_id)

    if enforce_duration:
        check_duration(policy, start, end)
    elif end <= start:
        raise DurationOutOfRange("Booking must end after it starts.", 0)

    check_operating_hours(policy, start, end, settings)

    check_conflicts(
        session,
        policy,
        start,
        end,
        now,
        session_date=session_date,
        exclude_rental_id=exclude_rental_id,
        exclude_session_id=exclude_session_id,
        tz=settings.tzinfo,
    )

    return policy


def validate_booking(
    session: Session,
    facility_id: UUID,
    start: datetime,
    end: datetime,
    session_date: Optional[date] = None,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> BookingDecision:
    """
    Decide whether a booking may be committed.

    Reads only; the caller persists on acceptance. To persist atomically use
    ``reserve_rental``.

    Returns:
        BookingDecision carrying the rejection kind and reason, if any
    """
    try:
        admit_booking(
            session,
            facility_id,
            start,
            end,
            now=now,
            session_date=session_date,
            settings=settings,
        )
    except SchedulingError as e:
        logger.info(f"Booking rejected on facility {facility_id}: {e.kind}")
        return BookingDecision.reject(e)

    return BookingDecision.accept()


# =============================================================================
# Rentals
# =============================================================================


def reserve_rental(
    session: Session,
    request: RentalRequest,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> FacilityRental:
    """
    Admit and persist a rental in one critical section.

    New rentals are pending with a hold of ``rental_hold_minutes`` unless
    ``request.confirm`` is set.

    Returns:
        The committed rental

    Raises:
        SchedulingError subclasses from ``admit_booking``
    """
    settings = settings or get_settings()
    now = now or utcnow()

    with facility_lock(session, request.facility_id):
        admit_booking(
            session,
            request.facility_id,
            request.start_time,
            request.end_time,
            now=now,
            session_date=request.session_date,
            settings=settings,
        )

        rental = FacilityRental(
            facility_id=request.facility_id,
            customer_ref=request.customer_ref,
            start_time=as_aware(request.start_time, settings.tzinfo),
            end_time=as_aware(request.end_time, settings.tzinfo),
            status="confirmed" if request.confirm else "pending",
            hold_expires_at=None if request.confirm else now + timedelta(minutes=settings.rental_hold_minutes),
        )
        session.add(rental)
        session.commit()

    session.refresh(rental)
    logger.info(
        f"Rental {rental.id} admitted on facility {rental.facility_id} ({rental.status})"
    )
    return rental


def _get_rental_or_raise(session: Session, rental_id: UUID) -> FacilityRental:
    rental = get_rental_by_id(session, rental_id)
    if rental is None:
        raise RentalNotFound(rental_id)
    return rental


def confirm_rental(
    session: Session,
    rental_id: UUID,
    now: Optional[datetime] = None,
) -> FacilityRental:
    """
    Confirm a pending rental while its hold is live.

    Raises:
        RentalNotFound: If the rental does not exist
        HoldExpired: If the hold lapsed (the rental is marked expired)
        InvalidRentalTransition: If the rental is cancelled or expired
    """
    now = now or utcnow()
    rental = _get_rental_or_raise(session, rental_id)

    with facility_lock(session, rental.facility_id):
        # Re-read: a concurrent cancel may have freed the slot for a new rental
        session.refresh(rental, with_for_update=True)

        if rental.status == "confirmed":
            return rental

        if rental.status != "pending":
            raise InvalidRentalTransition(
                f"Cannot confirm a rental that is {rental.status}."
            )

        if not rental.is_counted(now):
            rental.status = "expired"
            session.commit()
            raise HoldExpired("The hold on this rental has expired.")

        rental.status = "confirmed"
        rental.hold_expires_at = None
        session.commit()

    logger.info(f"Rental {rental.id} confirmed")
    return rental


def cancel_rental(session: Session, rental_id: UUID) -> FacilityRental:
    """
    Cancel a rental, releasing its facility time.

    Raises:
        RentalNotFound: If the rental does not exist
        InvalidRentalTransition: If the rental already expired
    """
    rental = _get_rental_or_raise(session, rental_id)

    with facility_lock(session, rental.facility_id):
        session.refresh(rental, with_for_update=True)

        if rental.status == "expired":
            raise InvalidRentalTransition("Cannot cancel an expired rental.")

        rental.status = "cancelled"
        session.commit()

    logger.info(f"Rental {rental.id} cancelled")
    return rental


def expire_lapsed_holds(session: Session, now: Optional[datetime] = None) -> int:
    """
    Mark pending rentals whose hold lapsed as expired.

    Conflict checks evaluate holds live, so this sweep only tidies status.

    Returns:
        Number of rentals expired
    """
    now = now or utcnow()
    lapsed = get_lapsed_holds(session, now)
    for rental in lapsed:
        rental.status = "expired"
    session.commit()

    if lapsed:
        logger.info(f"Expired {len(lapsed)} lapsed rental holds")
    return len(lapsed)


# =============================================================================
# Operator sessions
# =============================================================================


def add_custom_session(
    session: Session,
    program: Program,
    on_date: date,
    start_time: time,
    end_time: time,
    facility_id: Optional[UUID] = None,
    drop_in_price: Optional[float] = None,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> ProgramSession:
    """
    Add an operator-managed session to a custom-sessions program.

    The session is checked against the facility's hours and existing
    bookings; rental duration bounds do not apply to program sessions.

    Raises:
        CustomSessionsDisabled: If the program generates its sessions
        SchedulingError subclasses from ``admit_booking``
    """
    if not program.custom_sessions:
        raise CustomSessionsDisabled(
            "Enable custom sessions on this program before adding sessions manually."
        )

    settings = settings or get_settings()
    facility_id = facility_id or program.facility_id
    tz = settings.tzinfo

    program_session = ProgramSession(
        program_id=program.id,
        date=on_date,
        start_time=start_time,
        end_time=end_time,
        facility_id=facility_id,
        drop_in_price=drop_in_price,
    )

    if facility_id is None:
        if end_time <= start_time:
            raise DurationOutOfRange("Session must end after it starts.", 0)
        session.add(program_session)
        session.commit()
        return program_session

    with facility_lock(session, facility_id):
        admit_booking(
            session,
            facility_id,
            datetime.combine(on_date, start_time, tzinfo=tz),
            datetime.combine(on_date, end_time, tzinfo=tz),
            now=now,
            session_date=on_date,
            enforce_duration=False,
            settings=settings,
        )
        session.add(program_session)
        session.commit()

    logger.info(f"Custom session {program_session.id} added to program {program.id}")
    return program_session
