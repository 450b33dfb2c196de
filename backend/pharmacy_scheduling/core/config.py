from __future__ import annotations

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    project_name: str = "Pharmacy Scheduling Backend"
    database_url: str = Field(
        default="sqlite:///./pharmacy_scheduling.db",
        description="SQLModel compatible database URI",
    )
    jwt_secret_key: str = Field(default="change-me", description="Shared secret of the identity service")
    jwt_algorithm: str = "HS256"
    log_level: str = "INFO"

    default_timezone: str = "Africa/Lagos"
    working_day_start: str = "08:00"
    working_day_end: str = "18:00"
    slot_granularity_minutes: int = 30
    enforce_working_hours: bool = True

    next_available_default_days: int = 14
    next_available_max_days: int = 90
    recurrence_max_occurrences: int = 52
    recurrence_horizon_days: int = 365  # one year of series
    booking_retry_attempts: int = 1

    min_outcome_notes_length: int = 10
    min_time_off_reason_length: int = 10

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
