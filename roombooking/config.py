"""Application configuration using Pydantic settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from roombooking.services.timeutils import TimeWindow, is_valid_time, to_minutes


class Settings(BaseSettings):
    """Environment-driven configuration (``ROOMBOOKING_*`` variables or ``.env``)."""

    model_config = SettingsConfigDict(
        env_prefix="ROOMBOOKING_", env_file=".env", env_file_encoding="utf-8"
    )

    grid_start: str = Field(default="06:00", description="First visible minute of day grids")
    grid_end: str = Field(default="20:00", description="Last visible minute of day grids")
    slot_minutes: int = Field(default=30, gt=0, description="Granularity of the time-slot header")
    free_room_display_limit: int = Field(
        default=12, gt=0, description="How many free rooms the listing shows"
    )
    socket_feature_threshold: int = Field(
        default=6, ge=0, description="Working sockets needed for the 'sockets' feature filter"
    )
    directory_cache_ttl: int = Field(default=60, description="TTL (s) for cached hall/room lists")
    directory_cache_size: int = Field(default=256, gt=0)
    log_level: str = Field(default="INFO")
    seed_demo_data: bool = Field(default=False, description="Load the campus halls and rooms at startup")

    @field_validator("grid_start", "grid_end")
    @classmethod
    def _strict_time(cls, value: str) -> str:
        if not is_valid_time(value):
            raise ValueError(f"expected HH:MM, got {value!r}")
        return value

    @model_validator(mode="after")
    def _window_not_empty(self) -> Settings:
        if to_minutes(self.grid_start) >= to_minutes(self.grid_end):
            raise ValueError("grid_start must be before grid_end")
        return self

    def window(self) -> TimeWindow:
        return TimeWindow(start=self.grid_start, end=self.grid_end)


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""
    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""
    get_settings.cache_clear()
