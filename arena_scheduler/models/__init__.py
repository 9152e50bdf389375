"""
SQLAlchemy models for Arena Scheduler.

This module exports all database models for easy importing and
ensures Alembic can discover them for migrations.
"""

# Import base classes
from arena_scheduler.models.base import Base, BaseModel, GUID, UTCDateTime, get_json_type

# Import all models (must be imported for Alembic autogenerate)
from arena_scheduler.models.facilities import Facility
from arena_scheduler.models.programs import Program, ProgramSession
from arena_scheduler.models.rentals import FacilityRental

# Export all for easy importing
__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "GUID",
    "UTCDateTime",
    "get_json_type",
    # Facility model
    "Facility",
    # Program models
    "Program",
    "ProgramSession",
    # Rental model
    "FacilityRental",
]
