"""Configuration management for HomeVisit."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Travel-time oracle (OSRM)
    osrm_base_url: str = Field(
        default="http://router.project-osrm.org",
        description="Base URL of the OSRM routing service",
    )
    osrm_profile: str = Field(
        default="driving",
        description="OSRM routing profile",
    )
    travel_backend: Literal["osrm", "haversine"] = Field(
        default="osrm",
        description="Travel-time estimator: OSRM routing or offline great-circle estimate",
    )
    travel_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for a single routing request; exceeding it counts as a failure",
    )
    travel_fallback_minutes: int = Field(
        default=30,
        ge=0,
        description="Travel minutes assumed when the routing call itself fails",
    )
    travel_no_route_minutes: int = Field(
        default=999,
        ge=0,
        description="Travel minutes reported when the service finds no route",
    )
    travel_fail_open: bool = Field(
        default=True,
        description="Use the fallback value on call failure (False uses the no-route sentinel)",
    )
    travel_cache_enabled: bool = Field(
        default=True,
        description="Memoize travel queries per request by coordinate pair",
    )
    haversine_speed_kmh: float = Field(
        default=40.0,
        gt=0,
        description="Average driving speed for the offline estimator",
    )

    # Scheduling rules
    buffer_minutes: int = Field(
        default=5,
        ge=0,
        description="Safety margin added on top of raw travel time",
    )
    default_duration_minutes: int = Field(
        default=30,
        gt=0,
        description="Visit duration when the request does not specify one",
    )
    ranking_concurrency: int = Field(
        default=8,
        ge=1,
        description="Max doctors evaluated concurrently when ranking",
    )
    ranking_available_only: bool = Field(
        default=False,
        description="Rank only doctors whose status is Available (default ranks by schedule alone)",
    )

    # Default location for patients without known coordinates
    default_latitude: float = Field(default=24.137)
    default_longitude: float = Field(default=120.686)
    default_address: str = Field(default="Unknown address")

    # Persistence
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/homevisit.db",
        description="SQLAlchemy async DSN for the schedule store",
    )

    # Scheduling event log
    event_log_enabled: bool = Field(
        default=False,
        description="Write travel queries and booking decisions as JSON Lines",
    )
    event_log_dir: Path = Field(default=Path("data/logs"))

    # API Settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080)

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )

    # Debug
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode (exposes error details in responses)",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    @property
    def uses_sqlite(self) -> bool:
        """Check if the schedule store is SQLite-backed."""
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
