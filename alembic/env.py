"""
Alembic environment configuration for Arena Scheduler.

The database URL comes from application settings. Autogenerated migrations
import the custom column types (GUID, UTCDateTime) from
arena_scheduler.models.base instead of inlining their implementation.
"""

import logging
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from sqlalchemy.types import TypeDecorator

from alembic import context

from arena_scheduler.config import get_settings
from arena_scheduler.models.base import Base

# Models must be imported for autogenerate to see their tables
from arena_scheduler.models.facilities import Facility  # noqa: F401
from arena_scheduler.models.programs import Program, ProgramSession  # noqa: F401
from arena_scheduler.models.rentals import FacilityRental  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

settings = get_settings()
if settings.is_production:
    settings.validate_production_config()
config.set_main_option("sqlalchemy.url", settings.database_url)

target_metadata = Base.metadata


def render_item(type_, obj, autogen_context):
    """Render arena_scheduler column types as imports from models.base."""
    if type_ == "type" and isinstance(obj, TypeDecorator) and obj.__module__.startswith("arena_scheduler."):
        autogen_context.imports.add(f"from {obj.__module__} import {obj.__class__.__name__}")
        return f"{obj.__class__.__name__}()"
    return False


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode, emitting SQL to the script output.

    No Engine or DBAPI is needed.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=settings.database_url.startswith("sqlite"),
        render_item=render_item,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",  # SQLite ALTER TABLE
            render_item=render_item,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    logger.info(f"Running migrations offline ({settings.python_env})")
    run_migrations_offline()
else:
    logger.info(f"Running migrations online ({settings.python_env})")
    run_migrations_online()
