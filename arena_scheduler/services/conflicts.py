"""
Conflict resolution service.

Decides whether a candidate interval on a facility collides with anything
already occupying it:
- Counted rentals (confirmed, or pending with a live hold)
- Program sessions on every local calendar date the candidate touches

All intervals are half-open, ``[start, end)``: a booking ending at 11:00 does
not collide with one starting at 11:00.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from arena_scheduler.config import get_settings
from arena_scheduler.errors import SchedulingConflict
from arena_scheduler.services.queries import get_counted_rentals_in_range, get_sessions_on_date
from arena_scheduler.services.registry import ResourcePolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Collision:
    """An existing reservation or session that blocks a candidate."""

    kind: str  # 'reservation' or 'session'
    record_id: UUID
    starts_at: datetime
    ends_at: datetime


@dataclass(frozen=True)
class LocalWindow:
    """A candidate interval seen in the facility's local time."""

    date: date
    start_time: time
    end_time: time
    spans_midnight: bool
    end_date: Optional[date] = None
    end_clock: Optional[time] = None

    def segments(self) -> list[tuple[date, time, time]]:
        """Split into one ``(date, start, end)`` piece per local calendar date."""
        if not self.spans_midnight:
            return [(self.date, self.start_time, self.end_time)]

        pieces = [(self.date, self.start_time, time.max)]
        day = self.date + timedelta(days=1)
        while day < self.end_date:
            pieces.append((day, time.min, time.max))
            day += timedelta(days=1)
        if self.end_clock > time.min:
            pieces.append((self.end_date, time.min, self.end_clock))
        return pieces


def intervals_overlap(a_start, a_end, b_start, b_end) -> bool:
    """Half-open overlap test; works for datetimes and times of day."""
    return a_start < b_end and b_start < a_end


def as_aware(value: datetime, tz: tzinfo) -> datetime:
    """Attach the facility timezone to a naive datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value


def local_window(start: datetime, end: datetime, tz: tzinfo) -> LocalWindow:
    """
    Express ``[start, end)`` as a local calendar date plus times of day.

    An interval running past local midnight keeps its start date, and its
    ``end_time`` is the end of that day; ``segments()`` gives the pieces
    on each later date.
    """
    local_start = as_aware(start, tz).astimezone(tz)
    local_end = as_aware(end, tz).astimezone(tz)
    spans_midnight = local_end.date() > local_start.date()
    return LocalWindow(
        date=local_start.date(),
        start_time=local_start.time().replace(tzinfo=None),
        end_time=time.max if spans_midnight else local_end.time().replace(tzinfo=None),
        spans_midnight=spans_midnight,
        end_date=local_end.date(),
        end_clock=local_end.time().replace(tzinfo=None),
    )


def find_conflict(
    session: Session,
    policy: ResourcePolicy,
    start: datetime,
    end: datetime,
    now: datetime,
    session_date: Optional[date] = None,
    exclude_rental_id: Optional[UUID] = None,
    exclude_session_id: Optional[UUID] = None,
    tz: Optional[tzinfo] = None,
) -> Optional[Collision]:
    """
    Find the first reservation or session colliding with a candidate.

    Args:
        session: Database session
        policy: Booking policy of the target facility
        start: Candidate start (naive values are facility-local)
        end: Candidate end
        now: Instant at which holds are evaluated
        session_date: Calendar date for the session scan (defaults to every
            local date the candidate touches)
        exclude_rental_id: Rental to ignore
        exclude_session_id: Session to ignore
        tz: Facility timezone (defaults to the configured timezone)

    Returns:
        The colliding record, or None if the facility is free
    """
    if policy.allow_clashes:
        return None

    tz = tz or get_settings().tzinfo
    start = as_aware(start, tz)
    end = as_aware(end, tz)

    rentals = get_counted_rentals_in_range(
        session,
        policy.facility_id,
        start,
        end,
        now,
        exclude_rental_id=exclude_rental_id,
    )
    if rentals:
        rental = rentals[0]
        return Collision(
            kind="reservation",
            record_id=rental.id,
            starts_at=rental.start_time,
            ends_at=rental.end_time,
        )

    window = local_window(start, end, tz)
    if session_date is not None:
        pieces = [(session_date, window.start_time, window.end_time)]
    else:
        pieces = window.segments()

    for scan_date, piece_start, piece_end in pieces:
        for existing in get_sessions_on_date(
            session, policy.facility_id, scan_date, exclude_session_id=exclude_session_id
        ):
            if intervals_overlap(piece_start, piece_end, existing.start_time, existing.end_time):
                return Collision(
                    kind="session",
                    record_id=existing.id,
                    starts_at=datetime.combine(existing.date, existing.start_time, tzinfo=tz),
                    ends_at=datetime.combine(existing.date, existing.end_time, tzinfo=tz),
                )

    return None


def check_conflicts(
    session: Session,
    policy: ResourcePolicy,
    start: datetime,
    end: datetime,
    now: datetime,
    **kwargs,
) -> None:
    """
    Raise if a candidate collides with an existing booking.

    Raises:
        SchedulingConflict: Carrying the colliding reservation or session
    """
    collision = find_conflict(session, policy, start, end, now, **kwargs)
    if collision is None:
        return

    if collision.kind == "reservation":
        message = "This facility is already booked or reserved for the selected time."
    else:
        message = "This facility is already booked for a program session at the selected time."

    logger.info(
        f"Conflict on facility {policy.facility_id}: {collision.kind} {collision.record_id}"
    )
    raise SchedulingConflict(message, collision)
