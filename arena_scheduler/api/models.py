"""
Pydantic request and response models for the Arena Scheduler API.

Datetimes without an offset are read as facility-local time.
"""

import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from arena_scheduler.models.programs import FREQUENCIES, PROGRAM_TYPES, RECURRENCE_ENDS, WEEKDAYS


def _normalize_days(v: Optional[list[str]]) -> Optional[list[str]]:
    if v is None:
        return v
    days = [day.strip().lower() for day in v]
    unknown = [day for day in days if day not in WEEKDAYS]
    if unknown:
        raise ValueError(f"Unknown day(s) of week: {', '.join(unknown)}")
    return days


# =============================================================================
# Request Models
# =============================================================================

# Program columns an update may clear with an explicit null
CLEARABLE_PROGRAM_FIELDS = frozenset(
    {"description", "drop_in_price", "recurrence_end_date", "recurrence_count", "facility_id"}
)


class RecurrenceRequest(BaseModel):
    """Recurrence parameters to expand without persisting anything."""

    start_date: datetime.date = Field(..., description="First calendar date")
    end_date: datetime.date = Field(..., description="Last calendar date")
    start_time: datetime.time = Field(..., description="Occurrence start (time of day)")
    end_time: datetime.time = Field(..., description="Occurrence end (time of day)")
    repeats: bool = Field(default=True, description="Whether the program repeats")
    frequency: Literal[FREQUENCIES] = Field(default="daily", description="'daily' or 'weekly'")
    days_of_week: list[str] = Field(
        default_factory=list,
        description="Weekday filter, e.g. ['mon', 'wed']",
    )
    recurrence_ends: Literal[RECURRENCE_ENDS] = Field(
        default="never",
        description="'never', 'onDate' or 'afterN'",
    )
    recurrence_end_date: Optional[datetime.date] = Field(None, description="Cutoff for 'onDate'")
    recurrence_count: Optional[int] = Field(None, description="Occurrence cap for 'afterN'")

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: list[str]) -> list[str]:
        return _normalize_days(v)


class CreateProgramRequest(RecurrenceRequest):
    """Request to create a program and materialize its sessions."""

    name: str = Field(..., min_length=1, max_length=200, description="Program name")
    description: Optional[str] = Field(None, description="Program description")
    program_type: Literal[PROGRAM_TYPES] = Field(..., description="Program type")
    capacity: int = Field(default=0, ge=0, description="Maximum enrollments")
    price: float = Field(default=0.0, ge=0, description="Full program price")
    allow_drop_in: bool = Field(default=False, description="Whether drop-ins are allowed")
    drop_in_price: Optional[float] = Field(None, ge=0, description="Per-session drop-in price")
    custom_sessions: bool = Field(default=False, description="Operator-managed sessions")
    facility_id: Optional[UUID] = Field(None, description="Facility the program runs in")

    @field_validator("name")
    @classmethod
    def validate_name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name cannot be empty")
        return v.strip()


class UpdateProgramRequest(BaseModel):
    """Partial program update. Omitted fields are left unchanged."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    program_type: Optional[Literal[PROGRAM_TYPES]] = None
    capacity: Optional[int] = Field(None, ge=0)
    price: Optional[float] = Field(None, ge=0)
    allow_drop_in: Optional[bool] = None
    drop_in_price: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = None
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    start_time: Optional[datetime.time] = None
    end_time: Optional[datetime.time] = None
    repeats: Optional[bool] = None
    frequency: Optional[Literal[FREQUENCIES]] = None
    days_of_week: Optional[list[str]] = None
    recurrence_ends: Optional[Literal[RECURRENCE_ENDS]] = None
    recurrence_end_date: Optional[datetime.date] = None
    recurrence_count: Optional[int] = None
    custom_sessions: Optional[bool] = None
    facility_id: Optional[UUID] = None

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        return _normalize_days(v)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "UpdateProgramRequest":
        nulled = sorted(
            name
            for name in self.model_fields_set
            if getattr(self, name) is None and name not in CLEARABLE_PROGRAM_FIELDS
        )
        if nulled:
            raise ValueError(f"Cannot clear required field(s): {', '.join(nulled)}")
        return self


class CreateSessionRequest(BaseModel):
    """Operator-created session on a custom-sessions program."""

    date: datetime.date = Field(..., description="Session date")
    start_time: datetime.time = Field(..., description="Session start (time of day)")
    end_time: datetime.time = Field(..., description="Session end (time of day)")
    facility_id: Optional[UUID] = Field(
        None,
        description="Facility (defaults to the program's facility)",
    )
    drop_in_price: Optional[float] = Field(
        None,
        ge=0,
        description="Overrides the program's drop-in price",
    )


class BookingRequest(BaseModel):
    """Candidate booking of a facility."""

    facility_id: UUID = Field(..., description="Facility to book")
    start_time: datetime.datetime = Field(..., description="Start (ISO 8601)")
    end_time: datetime.datetime = Field(..., description="End (ISO 8601)")
    session_date: Optional[datetime.date] = Field(
        None,
        description="Calendar date whose program sessions are checked (defaults to the local start date)",
    )

    @model_validator(mode="after")
    def validate_order(self) -> "BookingRequest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class CreateRentalRequest(BookingRequest):
    """Request to rent a facility."""

    customer_ref: Optional[str] = Field(None, max_length=100, description="Customer reference")
    confirm: bool = Field(
        default=False,
        description="Confirm immediately instead of placing a hold",
    )


# =============================================================================
# Response Models
# =============================================================================


class OccurrenceResult(BaseModel):
    """A single expanded occurrence."""

    date: datetime.date
    start_time: datetime.time
    end_time: datetime.time


class ExpandResponse(BaseModel):
    """Result of a recurrence expansion."""

    occurrences: list[OccurrenceResult]
    total: int


class SessionResult(BaseModel):
    """A persisted program session."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    program_id: UUID
    date: datetime.date
    start_time: datetime.time
    end_time: datetime.time
    facility_id: Optional[UUID] = None
    drop_in_price: Optional[float] = Field(
        None,
        validation_alias="effective_drop_in_price",
        description="Drop-in price after falling back to the program's",
    )


class ProgramResult(BaseModel):
    """A program with its recurrence."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str] = None
    program_type: str
    capacity: int
    price: float
    allow_drop_in: bool
    drop_in_price: Optional[float] = None
    is_active: bool
    start_date: datetime.date
    end_date: datetime.date
    start_time: datetime.time
    end_time: datetime.time
    repeats: bool
    frequency: str
    days_of_week: list[str]
    recurrence_ends: str
    recurrence_end_date: Optional[datetime.date] = None
    recurrence_count: Optional[int] = None
    custom_sessions: bool
    facility_id: Optional[UUID] = None


class ProgramResponse(BaseModel):
    """Program plus the sessions it currently owns."""

    program: ProgramResult
    sessions: list[SessionResult]
    sessions_created: int = Field(..., description="Sessions written by this request")


class SessionListResponse(BaseModel):
    """Sessions of a program in date order."""

    sessions: list[SessionResult]
    total: int


class CollisionResult(BaseModel):
    """The booking a rejected candidate collided with."""

    kind: Literal["reservation", "session"]
    record_id: UUID


class BookingDecisionResponse(BaseModel):
    """Accept/reject verdict for a candidate booking."""

    accepted: bool
    kind: Optional[str] = Field(None, description="Rejection kind")
    reason: Optional[str] = Field(None, description="Human-readable rejection reason")
    collision: Optional[CollisionResult] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "accepted": False,
                "kind": "scheduling_conflict",
                "reason": "This facility is already booked or reserved for the selected time.",
                "collision": {
                    "kind": "reservation",
                    "record_id": "7b0d3f4e-2d55-4a4e-9c1d-1f6f3c2b9a10",
                },
            }
        }
    )


class RentalResult(BaseModel):
    """A facility rental."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    facility_id: UUID
    customer_ref: Optional[str] = None
    start_time: datetime.datetime
    end_time: datetime.datetime
    status: str
    hold_expires_at: Optional[datetime.datetime] = None


class ErrorResponse(BaseModel):
    """Error information for failed requests."""

    error_type: str = Field(..., description="Machine-readable error kind")
    message: str = Field(..., description="Human-readable error message")
    retryable: bool = Field(default=False, description="Whether request can be retried")
    collision: Optional[CollisionResult] = None
    created_dates: Optional[list[datetime.date]] = None
    failed_date: Optional[datetime.date] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"] = Field(..., description="Health status")
    version: str = Field(..., description="API version")
    database_connected: bool = Field(..., description="Database connection status")
