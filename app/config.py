"""Application configuration management."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_PLACEHOLDER_VALUES = {"", "change-me", "changeme", "your-api-key"}


class Settings(BaseSettings):
    """Centralised coach settings derived from environment variables."""

    intervals_api_key: str
    intervals_athlete_id: str = Field(
        default="0",
        description="intervals.icu athlete id ('0' resolves to the key owner).",
    )
    intervals_base_url: str = Field(default="https://intervals.icu/api/v1")
    intervals_timeout_seconds: float = Field(default=20.0, gt=0)

    anthropic_api_key: str | None = None
    advisor_enabled: bool = Field(default=True)
    advisor_model: str = Field(default="claude-sonnet-4-5-20250929")
    advisor_timeout_seconds: float = Field(default=60.0, gt=0)
    advisor_max_tokens: int = Field(default=1024, ge=64)

    garmin_email: str | None = None
    garmin_password: str | None = None
    garmin_token_store: str | None = Field(
        default=".garmin_tokens",
        description="Path to cached Garmin tokens (or null to disable cache).",
    )

    sport: str = Field(default="cycling", description="Primary sport: cycling or running.")
    target_ftp: int | None = Field(default=None, ge=50, le=600)
    workout_min_minutes: int = Field(default=60, ge=15)
    workout_max_minutes: int = Field(default=90, ge=15)

    database_url: str = Field(
        default="sqlite:///./data/coach.db",
        description="SQLAlchemy-compatible database URL for the run marker.",
    )
    app_host: str = Field(default="0.0.0.0")
    app_port: int = Field(default=8000, ge=1, le=65535)
    debug: bool = Field(default=False)

    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("logs"))
    scheduler_hour: int = Field(default=6, ge=0, le=23)
    scheduler_deadline_hour: int = Field(default=12, ge=0, le=23)
    scheduler_poll_minutes: int = Field(default=60, ge=5, le=240)
    scheduler_lock_file: Path = Field(default=Path(".scheduler.lock"))

    coach_config_path: Path = Field(
        default=Path(__file__).resolve().parent / "prompts" / "coach.yaml",
        description="YAML file holding detector thresholds and advisor prompts.",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("intervals_api_key")
    @classmethod
    def validate_intervals_api_key(cls, value: str) -> str:
        """Ensure the intervals.icu key is not left as a placeholder."""

        if value.strip().lower() in _PLACEHOLDER_VALUES:
            raise ValueError(
                "INTERVALS_API_KEY is required. Update your .env file before running the coach."
            )
        return value

    @field_validator("sport")
    @classmethod
    def normalize_sport(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"cycling", "running"}:
            raise ValueError("SPORT must be either 'cycling' or 'running'")
        return normalized

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        valid = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        upper = value.upper()
        if upper not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(sorted(valid))}")
        return upper

    @property
    def advisor_available(self) -> bool:
        """True when the advisor is switched on and has credentials."""

        return self.advisor_enabled and bool(self.anthropic_api_key)

    @property
    def wearable_configured(self) -> bool:
        return bool(self.garmin_email and self.garmin_password)


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance so it can be reused across the app."""

    settings = Settings()
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    return settings
