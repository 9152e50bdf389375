"""
Session materialization service.

Keeps a program's persisted sessions in step with its recurrence:
- custom_sessions programs are never touched
- switching from custom to generated sessions purges every existing session
- otherwise the owned sessions are deleted and recreated from the expanded
  occurrences, so repeated regeneration never accumulates duplicates
- every new session is scanned against the facility's rentals and other
  programs' sessions under the facility lock; a collision aborts the batch

The delete and create batch runs in the caller's transaction and is
committed once; any failure rolls the whole batch back.
"""

import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from arena_scheduler.config import Settings, get_settings
from arena_scheduler.errors import RegenerationFailed, SchedulingError
from arena_scheduler.models.base import utcnow
from arena_scheduler.models.programs import Program, ProgramSession
from arena_scheduler.services.conflicts import check_conflicts
from arena_scheduler.services.locks import facility_lock
from arena_scheduler.services.queries import get_program_sessions
from arena_scheduler.services.registry import ResourceRegistry
from arena_scheduler.services.recurrence import (
    RecurrenceParams,
    expand_recurrence,
    validate_recurrence,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionDraft:
    """A session the regeneration will create."""

    date: date
    start_time: time
    end_time: time
    facility_id: Optional[UUID] = None


@dataclass
class RegenerationPlan:
    """Deletes and creates that bring a program's sessions up to date."""

    program_id: Optional[UUID]
    delete_session_ids: list[UUID] = field(default_factory=list)
    create: list[SessionDraft] = field(default_factory=list)
    purged_custom: bool = False

    @property
    def is_noop(self) -> bool:
        return not self.delete_session_ids and not self.create


def plan_regeneration(
    program: Program,
    previous_custom_sessions: bool,
    existing_session_ids: Iterable[UUID],
) -> RegenerationPlan:
    """
    Plan the session changes for a program create or update.

    Pure: reads only the arguments.

    Args:
        program: Program in its new state
        previous_custom_sessions: custom_sessions before this update
            (False for a newly created program)
        existing_session_ids: Sessions the program currently owns

    Returns:
        RegenerationPlan (empty when the program manages its own sessions)

    Raises:
        InvalidRecurrenceInput: If the program's recurrence is malformed
    """
    if program.custom_sessions:
        return RegenerationPlan(program_id=program.id)

    occurrences = expand_recurrence(RecurrenceParams.from_program(program))

    return RegenerationPlan(
        program_id=program.id,
        delete_session_ids=list(existing_session_ids),
        create=[
            SessionDraft(
                date=occurrence.date,
                start_time=occurrence.start_time,
                end_time=occurrence.end_time,
                facility_id=program.facility_id,
            )
            for occurrence in occurrences
        ],
        purged_custom=previous_custom_sessions,
    )


def _create_session(session: Session, program: Program, draft: SessionDraft) -> ProgramSession:
    program_session = ProgramSession(
        program_id=program.id,
        date=draft.date,
        start_time=draft.start_time,
        end_time=draft.end_time,
        facility_id=draft.facility_id,
    )
    session.add(program_session)
    session.flush()
    return program_session


def _check_draft(
    session: Session,
    registry: ResourceRegistry,
    draft: SessionDraft,
    now: datetime,
    settings: Settings,
) -> None:
    if draft.facility_id is None:
        return

    tz = settings.tzinfo
    check_conflicts(
        session,
        registry.get_policy(draft.facility_id),
        datetime.combine(draft.date, draft.start_time, tzinfo=tz),
        datetime.combine(draft.date, draft.end_time, tzinfo=tz),
        now,
        session_date=draft.date,
        tz=tz,
    )


def apply_plan(
    session: Session,
    program: Program,
    plan: RegenerationPlan,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> list[ProgramSession]:
    """
    Write a regeneration plan, flushing each created session.

    Deletes are flushed first, so the program's old sessions never block
    their replacements. Does not commit.

    Returns:
        Created sessions in date order

    Raises:
        SchedulingConflict: If a new session collides with a rental or
            another program's session
        RegenerationFailed: If a delete or create fails; ``created_dates``
            lists the sessions flushed before the failure
    """
    settings = settings or get_settings()
    now = now or utcnow()
    registry = ResourceRegistry(session, settings)

    created: list[ProgramSession] = []
    current: Optional[SessionDraft] = None

    try:
        if plan.delete_session_ids:
            doomed = set(plan.delete_session_ids)
            for existing in get_program_sessions(session, program.id):
                if existing.id in doomed:
                    session.delete(existing)
            session.flush()

        for current in plan.create:
            _check_draft(session, registry, current, now, settings)
            created.append(_create_session(session, program, current))
    except SQLAlchemyError as e:
        logger.error(
            f"Session regeneration for program {program.id} failed after "
            f"{len(created)} of {len(plan.create)} sessions: {e}"
        )
        raise RegenerationFailed(
            f"Session regeneration failed after {len(created)} of {len(plan.create)} sessions.",
            created_dates=[s.date for s in created],
            failed_date=current.date if current else None,
            original_error=e,
        ) from e

    session.expire(program, ["sessions"])
    return created


def regenerate_sessions(
    session: Session,
    program: Program,
    previous_custom_sessions: bool = False,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> list[ProgramSession]:
    """
    Regenerate a program's sessions after create or update.

    The batch commits atomically with the caller's pending changes, inside
    the program facility's admission lock; on any failure the transaction is
    rolled back and nothing is committed.

    Args:
        session: Database session
        program: Program in its new state
        previous_custom_sessions: custom_sessions before this update
        now: Instant for hold evaluation (default: current UTC time)
        settings: Settings override

    Custom-session programs are saved as-is and their sessions left alone.

    Returns:
        Created sessions (empty for custom-session programs)

    Raises:
        InvalidRecurrenceInput: If the program's recurrence is malformed
        SchedulingConflict: If a generated session collides with a booking
        RegenerationFailed: If the batch could not be written
    """
    if program.custom_sessions:
        session.add(program)
        session.commit()
        logger.debug(f"Program {program.id} manages its own sessions; skipping generation")
        return []

    validate_recurrence(RecurrenceParams.from_program(program))

    lock = facility_lock(session, program.facility_id) if program.facility_id else nullcontext()

    with lock:
        try:
            session.add(program)
            session.flush()

            existing_ids = [s.id for s in get_program_sessions(session, program.id)]
            plan = plan_regeneration(program, previous_custom_sessions, existing_ids)

            if plan.purged_custom:
                logger.warning(
                    f"Program {program.id} switched to generated sessions; "
                    f"deleting {len(plan.delete_session_ids)} custom sessions"
                )

            created = apply_plan(session, program, plan, now=now, settings=settings)
            session.commit()
        except SchedulingError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Regeneration of sessions for program {program.id} failed: {e}")
            raise RegenerationFailed(
                "Session regeneration could not be committed.",
                original_error=e,
            ) from e

    logger.info(
        f"Regenerated {len(created)} sessions for program {program.id} "
        f"(removed {len(plan.delete_session_ids)})"
    )
    return created
