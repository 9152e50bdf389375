"""
FacilityRental model.

Entities:
- FacilityRental: An ad-hoc booking of a facility for a time range
"""

import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arena_scheduler.models.base import BaseModel, UTCDateTime

# Avoid circular imports for type hints
if TYPE_CHECKING:
    from arena_scheduler.models.facilities import Facility


RENTAL_STATUSES = ("pending", "confirmed", "cancelled", "expired")


class FacilityRental(BaseModel):
    """
    Tracks a facility rental.

    Status workflow: pending -> confirmed | cancelled | expired.

    A pending rental with hold_expires_at is a soft lease: it occupies the
    facility only until the hold lapses, whether or not its status has been
    moved to 'expired' yet.
    """

    __tablename__ = "facility_rentals"

    facility_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("facilities.id"),
        nullable=False,
        doc="Facility being rented"
    )

    customer_ref: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Opaque customer identifier from the identity layer"
    )

    start_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Rental start (UTC)"
    )

    end_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Rental end (UTC)"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        doc="Rental status: 'pending', 'confirmed', 'cancelled', 'expired'"
    )

    hold_expires_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        doc="If set, a pending rental is only reserved until this time"
    )

    # Relationships
    facility: Mapped["Facility"] = relationship(
        "Facility",
        back_populates="rentals",
        doc="Facility being rented"
    )

    # Indexes for time-range queries
    __table_args__ = (
        Index("idx_rental_facility", "facility_id"),
        Index("idx_rental_status", "status"),
        Index("idx_rental_facility_time", "facility_id", "start_time", "end_time"),
    )

    def is_counted(self, now: datetime) -> bool:
        """Whether this rental occupies its facility at ``now``."""
        if self.status == "confirmed":
            return True
        if self.status == "pending":
            return self.hold_expires_at is not None and self.hold_expires_at > now
        return False

    def __repr__(self) -> str:
        return f"<FacilityRental(facility_id={self.facility_id}, start={self.start_time}, status='{self.status}')>"
