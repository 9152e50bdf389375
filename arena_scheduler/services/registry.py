"""
Resource registry.

Read-only lookup of a facility's booking policy. Operating hours resolve to
the facility's own open/close time, falling back to the configured global
defaults.
"""

from dataclasses import dataclass
from datetime import time
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from arena_scheduler.config import Settings, get_settings
from arena_scheduler.errors import ResourceNotFound
from arena_scheduler.services.queries import get_facility_by_id


@dataclass(frozen=True)
class ResourcePolicy:
    """Booking policy of a single facility."""

    facility_id: UUID
    name: str
    min_booking_duration_minutes: Optional[int]
    max_booking_duration_minutes: Optional[int]
    allow_clashes: bool
    bookable: bool = True
    open_time: Optional[time] = None
    close_time: Optional[time] = None


class ResourceRegistry:
    """
    Looks up facility booking policy.

    Never defaults silently: a missing facility raises ResourceNotFound.
    """

    def __init__(self, session: Session, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()

    def get_policy(self, facility_id: UUID) -> ResourcePolicy:
        """
        Get the booking policy for a facility.

        Args:
            facility_id: Facility to look up

        Returns:
            ResourcePolicy with resolved operating hours

        Raises:
            ResourceNotFound: If the facility does not exist
        """
        facility = get_facility_by_id(self.session, facility_id)
        if facility is None:
            raise ResourceNotFound(facility_id)

        return ResourcePolicy(
            facility_id=facility.id,
            name=facility.name,
            min_booking_duration_minutes=facility.min_booking_duration_minutes,
            max_booking_duration_minutes=facility.max_booking_duration_minutes,
            allow_clashes=facility.allow_clashes,
            bookable=facility.bookable,
            open_time=facility.open_time or self.settings.default_open_time,
            close_time=facility.close_time or self.settings.default_close_time,
        )
