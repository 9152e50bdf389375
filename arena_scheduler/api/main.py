"""
FastAPI application for Arena Scheduler.

This is the main entry point for the HTTP API, providing:
- Recurrence preview
- Program management with session materialization
- Booking validation and facility rentals
- Health and status endpoints
"""

import logging
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from arena_scheduler import __version__
from arena_scheduler.api.dependencies import (
    get_app_settings,
    get_db_session,
    get_program_or_404,
)
from arena_scheduler.api.middleware import RequestLoggingMiddleware, record_outcome
from arena_scheduler.api.models import (
    BookingDecisionResponse,
    BookingRequest,
    CreateProgramRequest,
    CreateRentalRequest,
    CreateSessionRequest,
    ErrorResponse,
    ExpandResponse,
    HealthResponse,
    OccurrenceResult,
    ProgramResponse,
    ProgramResult,
    RecurrenceRequest,
    RentalResult,
    SessionListResponse,
    SessionResult,
    UpdateProgramRequest,
)
from arena_scheduler.config import Settings, get_settings
from arena_scheduler.database import check_connection
from arena_scheduler.errors import ResourceNotFound, SchedulingError
from arena_scheduler.models.programs import Program
from arena_scheduler.services.booking import (
    RentalRequest,
    add_custom_session,
    cancel_rental,
    confirm_rental,
    reserve_rental,
    validate_booking,
)
from arena_scheduler.services.materializer import regenerate_sessions
from arena_scheduler.services.queries import get_facility_by_id, get_program_sessions
from arena_scheduler.services.recurrence import RecurrenceParams, expand_recurrence

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "resource_not_found": 404,
    "program_not_found": 404,
    "rental_not_found": 404,
    "scheduling_conflict": 409,
    "hold_expired": 409,
    "invalid_rental_transition": 409,
    "custom_sessions_disabled": 409,
    "invalid_recurrence_input": 422,
    "resource_not_bookable": 422,
    "duration_out_of_range": 422,
    "outside_operating_hours": 422,
    "regeneration_failed": 503,
}

ERROR_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Program, facility or rental not found"},
    409: {"model": ErrorResponse, "description": "Conflicts with existing bookings or state"},
    422: {"model": ErrorResponse, "description": "Validation error"},
}


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logging.getLogger("arena_scheduler").setLevel(settings.log_level)
    settings.validate_operating_hours()

    logger.info(f"Starting Arena Scheduler API (timezone {settings.timezone})")

    yield

    logger.info("Shutting down Arena Scheduler API")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Arena Scheduler API",
    description="""
# Arena Scheduler API

Facility booking and program scheduling for a sports venue.

## Core Workflows

### Programs
1. **POST /programs** - Create a program; its sessions are generated from the recurrence
2. **PATCH /programs/{program_id}** - Update it; sessions are regenerated
3. Programs with `custom_sessions` are managed through **POST /programs/{program_id}/sessions**

### Rentals
1. **POST /bookings/validate** - Check a candidate booking without writing anything
2. **POST /rentals** - Reserve; the rental holds the facility until the hold lapses
3. **POST /rentals/{rental_id}/confirm** - Confirm while the hold is live

## Error Handling

Every rejection carries an `error_type` naming the failed check.

- **404** - Program, facility or rental not found
- **409** - Scheduling conflict, lapsed hold or invalid status change
- **422** - Invalid recurrence, duration, operating hours or closed facility
- **503** - Session regeneration failed and was rolled back (retryable)
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(SchedulingError)
async def scheduling_exception_handler(request, exc: SchedulingError):
    """Map scheduling rejections to HTTP status codes."""
    status_code = ERROR_STATUS.get(exc.kind, 400)
    record_outcome(request, exc.kind)
    if status_code >= 500:
        logger.error(f"{exc.kind}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_type": "http_error",
            "message": exc.detail,
            "retryable": exc.status_code >= 500,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error_type": "internal_error",
            "message": "An unexpected error occurred",
            "retryable": True,
        },
    )


# =============================================================================
# Health & Status Endpoints
# =============================================================================


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    tags=["System"],
)
def health_check(db: Session = Depends(get_db_session)):
    """
    Check API health status.

    Returns:
        Health status including database connectivity
    """
    database_connected = check_connection(db)

    return HealthResponse(
        status="healthy" if database_connected else "unhealthy",
        version=__version__,
        database_connected=database_connected,
    )


# =============================================================================
# Recurrence
# =============================================================================


@app.post(
    "/recurrence/expand",
    response_model=ExpandResponse,
    summary="Preview a recurrence",
    description="Expand recurrence parameters into dated occurrences without persisting them.",
    responses={422: ERROR_RESPONSES[422]},
    tags=["Programs"],
)
def expand(request: RecurrenceRequest) -> ExpandResponse:
    params = request.model_dump()
    params["days_of_week"] = tuple(params["days_of_week"])
    occurrences = expand_recurrence(RecurrenceParams(**params))

    return ExpandResponse(
        occurrences=[
            OccurrenceResult(date=o.date, start_time=o.start_time, end_time=o.end_time)
            for o in occurrences
        ],
        total=len(occurrences),
    )


# =============================================================================
# Program Endpoints
# =============================================================================


def _require_facility(db: Session, facility_id) -> None:
    if facility_id is not None and get_facility_by_id(db, facility_id) is None:
        raise ResourceNotFound(facility_id)


def _program_response(db: Session, program: Program, created: int) -> ProgramResponse:
    sessions = get_program_sessions(db, program.id)
    return ProgramResponse(
        program=ProgramResult.model_validate(program),
        sessions=[SessionResult.model_validate(s) for s in sessions],
        sessions_created=created,
    )


@app.post(
    "/programs",
    response_model=ProgramResponse,
    status_code=201,
    summary="Create program",
    description="""
Create a program and generate its sessions from the recurrence.

Programs with `custom_sessions=true` start without sessions; add them with
`POST /programs/{program_id}/sessions`.
    """,
    responses={**ERROR_RESPONSES, 503: {"model": ErrorResponse, "description": "Regeneration failed"}},
    tags=["Programs"],
)
def create_program(
    request: CreateProgramRequest,
    db: Session = Depends(get_db_session),
) -> ProgramResponse:
    _require_facility(db, request.facility_id)

    program = Program(**request.model_dump())
    logger.info(f"Creating program '{program.name}'")

    created = regenerate_sessions(db, program, previous_custom_sessions=False)
    return _program_response(db, program, len(created))


@app.patch(
    "/programs/{program_id}",
    response_model=ProgramResponse,
    summary="Update program",
    description="""
Update a program and regenerate its sessions.

## Session Behavior
- Generated programs: every session is deleted and recreated from the new recurrence
- Switching from custom to generated sessions deletes the operator's sessions
- Custom-session programs keep their sessions untouched
    """,
    responses={**ERROR_RESPONSES, 503: {"model": ErrorResponse, "description": "Regeneration failed"}},
    tags=["Programs"],
)
def update_program(
    request: UpdateProgramRequest,
    program: Program = Depends(get_program_or_404),
    db: Session = Depends(get_db_session),
) -> ProgramResponse:
    changes = request.model_dump(exclude_unset=True)
    if "facility_id" in changes:
        _require_facility(db, changes["facility_id"])

    previous_custom_sessions = program.custom_sessions
    for field_name, value in changes.items():
        setattr(program, field_name, value)

    logger.info(f"Updating program {program.id}: {sorted(changes)}")

    try:
        created = regenerate_sessions(db, program, previous_custom_sessions)
    except SchedulingError:
        db.rollback()
        raise

    return _program_response(db, program, len(created))


@app.get(
    "/programs/{program_id}/sessions",
    response_model=SessionListResponse,
    summary="List program sessions",
    responses={404: ERROR_RESPONSES[404]},
    tags=["Programs"],
)
def list_sessions(
    program: Program = Depends(get_program_or_404),
    db: Session = Depends(get_db_session),
) -> SessionListResponse:
    sessions = get_program_sessions(db, program.id)
    return SessionListResponse(
        sessions=[SessionResult.model_validate(s) for s in sessions],
        total=len(sessions),
    )


@app.post(
    "/programs/{program_id}/sessions",
    response_model=SessionResult,
    status_code=201,
    summary="Add custom session",
    description="""
Add an operator-managed session to a program with `custom_sessions=true`.

The session is validated against the facility's operating hours and
existing bookings. Rental duration limits do not apply.
    """,
    responses=ERROR_RESPONSES,
    tags=["Programs"],
)
def create_session(
    request: CreateSessionRequest,
    program: Program = Depends(get_program_or_404),
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> SessionResult:
    program_session = add_custom_session(
        db,
        program,
        request.date,
        request.start_time,
        request.end_time,
        facility_id=request.facility_id,
        drop_in_price=request.drop_in_price,
        settings=settings,
    )
    return SessionResult.model_validate(program_session)


# =============================================================================
# Booking & Rental Endpoints
# =============================================================================


@app.post(
    "/bookings/validate",
    response_model=BookingDecisionResponse,
    summary="Validate a booking",
    description="""
Check whether a facility can be booked for an interval.

Always returns 200; a rejection carries its `kind` and `reason`. Nothing is
written, so an accepted candidate can still lose to a concurrent rental.
Use `POST /rentals` to validate and reserve atomically.
    """,
    tags=["Bookings"],
)
def validate(
    request: BookingRequest,
    http_request: Request,
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> BookingDecisionResponse:
    decision = validate_booking(
        db,
        request.facility_id,
        request.start_time,
        request.end_time,
        session_date=request.session_date,
        settings=settings,
    )
    if not decision.accepted:
        record_outcome(http_request, decision.kind)

    collision = None
    if decision.collision is not None:
        collision = {"kind": decision.collision.kind, "record_id": decision.collision.record_id}

    return BookingDecisionResponse(
        accepted=decision.accepted,
        kind=decision.kind,
        reason=decision.reason,
        collision=collision,
    )


@app.post(
    "/rentals",
    response_model=RentalResult,
    status_code=201,
    summary="Reserve a facility",
    description="""
Validate and persist a rental in one step.

New rentals are `pending` and hold the facility for the configured number of
minutes; pass `confirm=true` to confirm immediately.
    """,
    responses=ERROR_RESPONSES,
    tags=["Bookings"],
)
def create_rental(
    request: CreateRentalRequest,
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> RentalResult:
    rental = reserve_rental(
        db,
        RentalRequest(
            facility_id=request.facility_id,
            start_time=request.start_time,
            end_time=request.end_time,
            customer_ref=request.customer_ref,
            confirm=request.confirm,
            session_date=request.session_date,
        ),
        settings=settings,
    )
    return RentalResult.model_validate(rental)


@app.post(
    "/rentals/{rental_id}/confirm",
    response_model=RentalResult,
    summary="Confirm a rental",
    description="""
Confirm a pending rental while its hold is live.

## Idempotency
Confirming an already-confirmed rental returns it unchanged.
    """,
    responses={404: ERROR_RESPONSES[404], 409: ERROR_RESPONSES[409]},
    tags=["Bookings"],
)
def confirm(rental_id: UUID, db: Session = Depends(get_db_session)) -> RentalResult:
    return RentalResult.model_validate(confirm_rental(db, rental_id))


@app.post(
    "/rentals/{rental_id}/cancel",
    response_model=RentalResult,
    summary="Cancel a rental",
    responses={404: ERROR_RESPONSES[404], 409: ERROR_RESPONSES[409]},
    tags=["Bookings"],
)
def cancel(rental_id: UUID, db: Session = Depends(get_db_session)) -> RentalResult:
    return RentalResult.model_validate(cancel_rental(db, rental_id))


def run_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Run the API server with Uvicorn."""
    import uvicorn

    uvicorn.run(
        "arena_scheduler.api.main:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    settings = get_settings()
    run_server(host=settings.api_host, port=settings.api_port, reload=settings.api_reload)
