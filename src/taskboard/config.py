"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_path: Path = Field(
        default_factory=lambda: Path("data/taskboard.db"),
        validation_alias=AliasChoices("DATABASE_PATH", "database_path"),
    )
    feed_fetch_timeout: float = Field(
        default=10.0,
        ge=0.5,
        validation_alias=AliasChoices("FEED_FETCH_TIMEOUT", "feed_fetch_timeout"),
        description="Seconds allowed for a single external iCal feed fetch.",
    )
    provision_calendar_sources: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "PROVISION_CALENDAR_SOURCES",
            "provision_calendar_sources",
        ),
    )
    cron_secret: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("CRON_SECRET", "cron_secret"),
    )
    default_task_priority: Literal["low", "medium", "high", "urgent"] = Field(
        default="medium",
        validation_alias=AliasChoices(
            "DEFAULT_TASK_PRIORITY",
            "default_task_priority",
        ),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
