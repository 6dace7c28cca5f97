"""
Application configuration.
Built once at startup from TASKQUEST_* environment variables and passed
explicitly to the database, services and scheduler.
"""
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from taskquest.constants import (
    CORS_ALLOWED_ORIGINS,
    DEFAULT_LOG_DIRECTORY_PROD,
    DEFAULT_MAX_HEALTH,
    DEFAULT_REMINDER_WINDOW_HOURS,
    DEFAULT_TODO_ON_TIME_BONUS,
)

MEMORY_DATABASE = "memory"


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TASKQUEST_", env_file=".env", extra="ignore")

    # Storage: a SQLAlchemy URL, or "memory" for a shared in-memory SQLite store
    database_url: str = "sqlite:///./taskquest.db"
    database_echo: bool = False

    # Auth
    api_key: str = "your-secret-key-change-me"

    # Logging
    log_dir: str = DEFAULT_LOG_DIRECTORY_PROD
    log_file: str = "app.log"
    log_level: str = "INFO"

    # Daily reset sweep (local time)
    sweep_enabled: bool = True
    sweep_hour: int = Field(default=0, ge=0, le=23)
    sweep_minute: int = Field(default=0, ge=0, le=59)

    # Rewards
    todo_on_time_bonus: int = Field(default=DEFAULT_TODO_ON_TIME_BONUS, ge=0)
    default_max_health: int = Field(default=DEFAULT_MAX_HEALTH, gt=0)

    # Reminders
    reminder_window_hours: int = Field(default=DEFAULT_REMINDER_WINDOW_HOURS, ge=1, le=168)

    cors_allowed_origins: List[str] = Field(default_factory=lambda: list(CORS_ALLOWED_ORIGINS))

    @property
    def uses_memory_storage(self) -> bool:
        return self.database_url == MEMORY_DATABASE
