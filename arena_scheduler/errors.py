"""
Scheduling errors.

Every rejection the engine produces carries a machine-distinguishable ``kind``
and a human-readable message. ``retryable`` tells the caller whether
re-submitting the same request can succeed without changing it.
"""

from datetime import date
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from arena_scheduler.services.conflicts import Collision


class SchedulingError(Exception):
    """Base exception for booking and scheduling operations."""

    kind: str = "scheduling_error"
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Serialize for API error responses."""
        return {
            "error_type": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }


class InvalidRecurrenceInput(SchedulingError):
    """
    Recurrence parameters are malformed or incomplete.

    Causes:
    - Missing start/end date or time
    - start_date after end_date, end_time not after start_time
    - Unknown frequency, termination mode or weekday
    """

    kind = "invalid_recurrence_input"


class ResourceNotFound(SchedulingError):
    """The facility referenced by a booking does not exist."""

    kind = "resource_not_found"

    def __init__(self, facility_id):
        super().__init__(f"Facility {facility_id} not found.")
        self.facility_id = facility_id


class ResourceNotBookable(SchedulingError):
    """The facility exists but is closed for booking."""

    kind = "resource_not_bookable"

    def __init__(self, facility_id):
        super().__init__("This facility cannot be booked.")
        self.facility_id = facility_id


class DurationOutOfRange(SchedulingError):
    """Booking length falls outside the facility's duration bounds."""

    kind = "duration_out_of_range"

    def __init__(self, message: str, duration_minutes: float):
        super().__init__(message)
        self.duration_minutes = duration_minutes


class OutsideOperatingHours(SchedulingError):
    """Booking starts before the facility opens or ends after it closes."""

    kind = "outside_operating_hours"


class SchedulingConflict(SchedulingError):
    """The requested interval overlaps a counted reservation or session."""

    kind = "scheduling_conflict"

    def __init__(self, message: str, collision: "Collision"):
        super().__init__(message)
        self.collision = collision

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["collision"] = {
            "kind": self.collision.kind,
            "record_id": str(self.collision.record_id),
        }
        return data


class HoldExpired(SchedulingError):
    """A pending rental's hold lapsed before it was confirmed."""

    kind = "hold_expired"


class InvalidRentalTransition(SchedulingError):
    """A rental status change is not allowed from its current status."""

    kind = "invalid_rental_transition"


class CustomSessionsDisabled(SchedulingError):
    """Operator sessions were added to a program with generated sessions."""

    kind = "custom_sessions_disabled"


class ProgramNotFound(SchedulingError):
    """The program referenced by a request does not exist."""

    kind = "program_not_found"

    def __init__(self, program_id):
        super().__init__(f"Program {program_id} not found.")
        self.program_id = program_id


class RentalNotFound(SchedulingError):
    """The rental referenced by a request does not exist."""

    kind = "rental_not_found"

    def __init__(self, rental_id):
        super().__init__(f"Rental {rental_id} not found.")
        self.rental_id = rental_id


class RegenerationFailed(SchedulingError):
    """
    Session materialization failed part-way through a batch.

    The batch is rolled back; ``created_dates`` lists the occurrences that had
    been written before ``failed_date`` so the caller can decide whether to
    retry the whole regeneration.
    """

    kind = "regeneration_failed"
    retryable = True

    def __init__(
        self,
        message: str,
        created_dates: Optional[list[date]] = None,
        failed_date: Optional[date] = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message)
        self.created_dates = created_dates or []
        self.failed_date = failed_date
        self.original_error = original_error

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["created_dates"] = [d.isoformat() for d in self.created_dates]
        data["failed_date"] = self.failed_date.isoformat() if self.failed_date else None
        return data
