"""
FastAPI dependency injection providers.

Provides database sessions, settings and entity lookups for the routes.
"""

import logging
from typing import Generator
from uuid import UUID

from fastapi import Depends
from sqlalchemy.orm import Session

from arena_scheduler.config import Settings, get_settings
from arena_scheduler.database import get_db
from arena_scheduler.errors import ProgramNotFound
from arena_scheduler.models.programs import Program
from arena_scheduler.services.queries import get_program_by_id

logger = logging.getLogger(__name__)


def get_db_session() -> Generator[Session, None, None]:
    """
    Dependency injection for database session.

    Yields a database session and ensures cleanup.
    """
    yield from get_db()


def get_app_settings() -> Settings:
    """Dependency injection for application settings."""
    return get_settings()


def get_program_or_404(
    program_id: UUID,
    db: Session = Depends(get_db_session),
) -> Program:
    """
    Load the program named in the path.

    Raises:
        ProgramNotFound: If no program has this ID (mapped to 404)
    """
    program = get_program_by_id(db, program_id)
    if program is None:
        logger.info(f"Program {program_id} not found")
        raise ProgramNotFound(program_id)
    return program
