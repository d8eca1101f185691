from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "noticeboard"
    VERSION: str = "0.1.0"
    # Overrides the level in logging_config.json when set
    LOG_LEVEL: Optional[str] = None
    LOGGING_CONFIG_PATH: str = "logging_config.json"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./noticeboard.db"
    DATABASE_ECHO: bool = False

    # Business time zone used to turn evaluation instants into occurrence dates
    TIMEZONE: str = "UTC"

    # Notifications
    SUBJECT_MAX_LENGTH: int = 255
    NOTIFICATION_RETENTION_DAYS: int = 90

    # Redis & Celery
    REDIS_PASSWORD: str = ""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # Cron schedules (hour/minute in TIMEZONE)
    RECURRING_TODO_CRON_HOUR: int = 1
    RECURRING_TODO_CRON_MINUTE: int = 0
    NOTIFICATION_CLEANUP_CRON_HOUR: int = 2
    NOTIFICATION_CLEANUP_CRON_MINUTE: int = 0

    @field_validator("NOTIFICATION_RETENTION_DAYS")
    def validate_retention_days(cls, v: int) -> int:
        if v < 0:
            raise ValueError("NOTIFICATION_RETENTION_DAYS must not be negative")
        return v

    @property
    def redis_url(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
