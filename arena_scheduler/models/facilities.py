"""
Facility model.

Entities:
- Facility: A bookable physical resource (court, rim, pitch, field)
"""

from datetime import time
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, Text, Integer, Boolean, Time, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arena_scheduler.models.base import BaseModel

# Avoid circular imports for type hints
if TYPE_CHECKING:
    from arena_scheduler.models.programs import Program, ProgramSession
    from arena_scheduler.models.rentals import FacilityRental


FACILITY_TYPES = ("full_court", "half_court", "rim", "court", "pitch", "field")


class Facility(BaseModel):
    """
    Represents a bookable facility.

    Booking policy:
    - min/max booking duration in minutes (NULL = unbounded)
    - allow_clashes: admin override, skips conflict checks entirely
    - open_time/close_time: per-facility operating hours, overriding the
      configured global hours
    - bookable: when unchecked, customers cannot book the facility
    """

    __tablename__ = "facilities"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Facility name (e.g., 'Court 1', 'North Pitch')"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Detailed description of the facility"
    )

    facility_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Facility type: 'full_court', 'half_court', 'rim', 'court', 'pitch', 'field'"
    )

    bookable: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        doc="If false, this facility cannot be booked"
    )

    allow_clashes: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        doc="If true, bookings for this facility may overlap"
    )

    min_booking_duration_minutes: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        default=30,
        doc="Minimum booking duration in minutes"
    )

    max_booking_duration_minutes: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        default=60,
        doc="Maximum booking duration in minutes"
    )

    open_time: Mapped[Optional[time]] = mapped_column(
        Time,
        nullable=True,
        doc="Facility open time (overrides global default)"
    )

    close_time: Mapped[Optional[time]] = mapped_column(
        Time,
        nullable=True,
        doc="Facility close time (overrides global default)"
    )

    # Relationships
    programs: Mapped[list["Program"]] = relationship(
        "Program",
        back_populates="facility",
        doc="Programs held at this facility"
    )

    sessions: Mapped[list["ProgramSession"]] = relationship(
        "ProgramSession",
        back_populates="facility",
        doc="Materialized program sessions at this facility"
    )

    rentals: Mapped[list["FacilityRental"]] = relationship(
        "FacilityRental",
        back_populates="facility",
        doc="Rentals of this facility"
    )

    __table_args__ = (
        Index("idx_facility_type", "facility_type"),
        Index("idx_facility_bookable", "bookable"),
    )

    def __repr__(self) -> str:
        return f"<Facility(name='{self.name}', type='{self.facility_type}', allow_clashes={self.allow_clashes})>"
