"""
Program and ProgramSession models.

Entities:
- Program: A recurring activity (camp, clinic, training, open gym)
- ProgramSession: One concrete dated occurrence of a program
"""

import uuid
import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import (
    String, Text, Integer, Float, Boolean, Date, Time, ForeignKey, Index, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arena_scheduler.models.base import BaseModel, get_json_type

# Avoid circular imports for type hints
if TYPE_CHECKING:
    from arena_scheduler.models.facilities import Facility


PROGRAM_TYPES = ("camp", "clinic", "training", "open_gym")
FREQUENCIES = ("daily", "weekly")
RECURRENCE_ENDS = ("never", "onDate", "afterN")
WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class Program(BaseModel):
    """
    Represents a recurring activity program.

    Recurrence:
    - start_date..end_date bounds the calendar range
    - start_time/end_time: only the clock time is used
    - repeats + frequency ('daily' | 'weekly') + days_of_week filter
    - recurrence_ends: 'never', 'onDate' (recurrence_end_date),
      'afterN' (recurrence_count)

    custom_sessions switches sessions to operator management; switching back
    to generated sessions deletes every existing session of the program.
    """

    __tablename__ = "programs"

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Program name"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Program description"
    )

    program_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Program type: 'camp', 'clinic', 'training', 'open_gym'"
    )

    capacity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Maximum enrollments"
    )

    price: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        doc="Full program price"
    )

    allow_drop_in: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        doc="Allow per-session (drop-in) bookings"
    )

    drop_in_price: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        doc="Default drop-in price (sessions may override)"
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        doc="Whether the program is active"
    )

    # Calendar window
    start_date: Mapped[datetime.date] = mapped_column(
        Date,
        nullable=False,
        doc="First day of the program"
    )

    end_date: Mapped[datetime.date] = mapped_column(
        Date,
        nullable=False,
        doc="Last day of the program"
    )

    start_time: Mapped[datetime.time] = mapped_column(
        Time,
        nullable=False,
        doc="Session start time of day"
    )

    end_time: Mapped[datetime.time] = mapped_column(
        Time,
        nullable=False,
        doc="Session end time of day"
    )

    # Recurrence
    repeats: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        doc="Does this program repeat?"
    )

    frequency: Mapped[str] = mapped_column(
        String(20),
        default="daily",
        nullable=False,
        doc="Repeat frequency: 'daily', 'weekly'"
    )

    days_of_week: Mapped[list] = mapped_column(
        get_json_type(),
        nullable=False,
        default=list,
        doc="Weekday filter, e.g. ['mon', 'wed'] (empty = no filter)"
    )

    recurrence_ends: Mapped[str] = mapped_column(
        String(20),
        default="never",
        nullable=False,
        doc="Termination: 'never', 'onDate', 'afterN'"
    )

    recurrence_end_date: Mapped[Optional[datetime.date]] = mapped_column(
        Date,
        nullable=True,
        doc="Last date when recurrence_ends is 'onDate'"
    )

    recurrence_count: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Occurrence count when recurrence_ends is 'afterN'"
    )

    custom_sessions: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        doc="Sessions are managed manually; no generation"
    )

    facility_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("facilities.id"),
        nullable=True,
        doc="Facility the program runs at"
    )

    # Relationships
    facility: Mapped[Optional["Facility"]] = relationship(
        "Facility",
        back_populates="programs",
        doc="Facility the program runs at"
    )

    sessions: Mapped[list["ProgramSession"]] = relationship(
        "ProgramSession",
        back_populates="program",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProgramSession.date",
        doc="Materialized sessions"
    )

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_program_date_range"),
        Index("idx_program_facility", "facility_id"),
        Index("idx_program_dates", "start_date", "end_date"),
    )

    def __repr__(self) -> str:
        return f"<Program(name='{self.name}', type='{self.program_type}', custom_sessions={self.custom_sessions})>"


class ProgramSession(BaseModel):
    """
    One concrete occurrence of a Program.

    Created by the session materializer, or by an operator when the program
    uses custom sessions. Owned by its program and deleted with it.
    """

    __tablename__ = "program_sessions"

    program_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=False,
        doc="Owning program"
    )

    date: Mapped[datetime.date] = mapped_column(
        Date,
        nullable=False,
        doc="Calendar date of the session"
    )

    start_time: Mapped[datetime.time] = mapped_column(
        Time,
        nullable=False,
        doc="Start time of day"
    )

    end_time: Mapped[datetime.time] = mapped_column(
        Time,
        nullable=False,
        doc="End time of day"
    )

    facility_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("facilities.id"),
        nullable=True,
        doc="Facility the session occupies"
    )

    drop_in_price: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        doc="Override price for this drop-in session"
    )

    # Relationships
    program: Mapped["Program"] = relationship(
        "Program",
        back_populates="sessions",
        doc="Owning program"
    )

    facility: Mapped[Optional["Facility"]] = relationship(
        "Facility",
        back_populates="sessions",
        doc="Facility the session occupies"
    )

    __table_args__ = (
        Index("idx_session_program", "program_id"),
        # Composite index for same-day conflict scans
        Index("idx_session_facility_date", "facility_id", "date"),
    )

    @property
    def effective_drop_in_price(self) -> float:
        """Session override, then program drop-in price, then program price."""
        if self.drop_in_price is not None:
            return self.drop_in_price
        if self.program.drop_in_price is not None:
            return self.program.drop_in_price
        return self.program.price

    def __repr__(self) -> str:
        return f"<ProgramSession(program_id={self.program_id}, date='{self.date}', start='{self.start_time}')>"
