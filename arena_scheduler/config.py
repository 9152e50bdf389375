"""
Configuration management for Arena Scheduler.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

from datetime import time
from functools import lru_cache
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Python & Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/arena_scheduler.db",
        description="Database connection URL"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )
    api_reload: bool = Field(
        default=True,
        description="Enable auto-reload in development"
    )

    # Timezone Configuration
    timezone: str = Field(
        default="America/Los_Angeles",
        description="Facility timezone (IANA name); session dates and times are local to it"
    )

    # Operating hours (facility open_time/close_time override these)
    default_open_time: Optional[time] = Field(
        default=None,
        description="Global facility open time (HH:MM), unbounded when unset"
    )
    default_close_time: Optional[time] = Field(
        default=None,
        description="Global facility close time (HH:MM), unbounded when unset"
    )

    # Rentals
    rental_hold_minutes: int = Field(
        default=15,
        ge=1,
        description="How long a pending rental holds its facility before lapsing"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.python_env == "production"

    @property
    def uses_postgresql(self) -> bool:
        """Check if PostgreSQL is the configured database."""
        return "postgresql" in self.database_url.lower()

    @property
    def tzinfo(self) -> ZoneInfo:
        """Facility timezone as a tzinfo object."""
        return ZoneInfo(self.timezone)

    def validate_operating_hours(self) -> None:
        """
        Validate the global operating hours.

        Raises:
            ValueError: If close time is not after open time
        """
        if self.default_open_time and self.default_close_time:
            if self.default_close_time <= self.default_open_time:
                raise ValueError(
                    "DEFAULT_CLOSE_TIME must be later than DEFAULT_OPEN_TIME."
                )

    def validate_production_config(self) -> None:
        """
        Validate configuration for production environment.

        Raises:
            ValueError: If required production settings are missing or invalid
        """
        if not self.is_production:
            return

        errors = []

        # SQLite cannot provide row locks for booking admission
        if not self.uses_postgresql:
            errors.append(
                "Production requires PostgreSQL. "
                "Set DATABASE_URL to a PostgreSQL connection string."
            )

        try:
            self.validate_operating_hours()
        except ValueError as e:
            errors.append(str(e))

        if errors:
            raise ValueError("Production configuration errors:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure we only load settings once.
    Use this function throughout the application to access settings.

    Returns:
        Settings instance loaded from environment

    Example:
        >>> from arena_scheduler.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.database_url)
    """
    return Settings()
