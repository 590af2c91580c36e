"""Workout tracker settings, read from WORKOUT_TRACKER_* environment variables."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CACHE_PATH = "~/.workout-tracker/cache.json"


class Settings(BaseSettings):
    """Connection and local cache settings."""

    model_config = SettingsConfigDict(
        env_prefix="WORKOUT_TRACKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    storage_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the key-value storage server",
    )
    timeout: float = Field(default=30, gt=0, description="HTTP timeout in seconds")
    cache_path: str | None = Field(
        default=DEFAULT_CACHE_PATH,
        description="Local cache file; empty disables persistence",
    )
    log_level: str = Field(default="INFO")

    @field_validator("cache_path", mode="before")
    @classmethod
    def empty_cache_path_disables_file(cls, v):
        return v or None

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()
