"""
Service layer for Arena Scheduler.

Provides the scheduling engine:
- Recurrence expansion (python-dateutil rrule)
- Session materialization for programs
- Facility booking policy lookup
- Conflict detection against rentals and sessions
- Booking validation, rentals and operator sessions
"""

from arena_scheduler.services.recurrence import (
    Occurrence,
    RecurrenceParams,
    expand_recurrence,
    validate_recurrence,
    effective_end_date,
)

from arena_scheduler.services.registry import ResourcePolicy, ResourceRegistry

from arena_scheduler.services.conflicts import (
    Collision,
    intervals_overlap,
    find_conflict,
    check_conflicts,
)

from arena_scheduler.services.locks import facility_lock

from arena_scheduler.services.booking import (
    BookingDecision,
    RentalRequest,
    admit_booking,
    validate_booking,
    reserve_rental,
    confirm_rental,
    cancel_rental,
    expire_lapsed_holds,
    add_custom_session,
)

from arena_scheduler.services.materializer import (
    RegenerationPlan,
    SessionDraft,
    plan_regeneration,
    apply_plan,
    regenerate_sessions,
)

__all__ = [
    # Recurrence
    "Occurrence",
    "RecurrenceParams",
    "expand_recurrence",
    "validate_recurrence",
    "effective_end_date",
    # Registry
    "ResourcePolicy",
    "ResourceRegistry",
    # Conflicts
    "Collision",
    "intervals_overlap",
    "find_conflict",
    "check_conflicts",
    "facility_lock",
    # Booking
    "BookingDecision",
    "RentalRequest",
    "admit_booking",
    "validate_booking",
    "reserve_rental",
    "confirm_rental",
    "cancel_rental",
    "expire_lapsed_holds",
    "add_custom_session",
    # Materialization
    "RegenerationPlan",
    "SessionDraft",
    "plan_regeneration",
    "apply_plan",
    "regenerate_sessions",
]
