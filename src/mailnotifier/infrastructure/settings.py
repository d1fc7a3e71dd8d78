"""Application settings using Pydantic Settings for configuration management."""

from __future__ import annotations

from pathlib import Path

from loguru import logger
from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mailnotifier.domain.errors import ConfigurationError

REQUIRED_ENV_VARS = (
    "GMAIL_EMAIL",
    "GMAIL_APP_PASSWORD",
    "DISCORD_TOKEN",
    "DISCORD_USER_ID",
)


class Settings(BaseSettings):
    """Worker settings loaded from environment variables (and .env)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Mail account - use an app password, never the primary account password
    gmail_email: str
    gmail_app_password: SecretStr

    # Discord bot + DM recipient
    discord_token: SecretStr
    discord_user_id: str

    # IMAP server
    imap_host: str = "imap.gmail.com"
    imap_port: int = 993
    imap_folder: str = "INBOX"
    imap_timeout_seconds: float = Field(default=30.0, gt=0)

    # Loop timing
    poll_interval_seconds: float = Field(default=30.0, gt=0)
    backoff_initial_seconds: float = Field(default=5.0, gt=0)
    backoff_max_seconds: float = Field(default=300.0, gt=0)

    discord_timeout_seconds: float = Field(default=30.0, gt=0)

    # Optional cursor checkpoint; unset keeps the cursor in memory only
    cursor_state_file: Path | None = None

    log_level: str = "INFO"

    @field_validator("gmail_email", "discord_user_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("discord_user_id")
    @classmethod
    def _snowflake(cls, value: str) -> str:
        if not value.isdigit():
            raise ValueError("must be a numeric Discord user id")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        # loguru level names are upper-case and case-sensitive
        value = value.strip().upper()
        try:
            logger.level(value)
        except ValueError:
            raise ValueError(f"unknown log level {value!r}") from None
        return value

    @model_validator(mode="after")
    def _backoff_bounds(self) -> "Settings":
        if self.backoff_max_seconds < self.backoff_initial_seconds:
            raise ValueError("BACKOFF_MAX_SECONDS must be >= BACKOFF_INITIAL_SECONDS")
        return self


def load_settings(**overrides) -> Settings:
    """Load settings, turning validation failures into ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            field = ".".join(str(part) for part in err.get("loc", ())) or "settings"
            if err.get("type") == "missing":
                problems.append(f"{field.upper()} is not set")
            else:
                problems.append(f"{field.upper()}: {err.get('msg')}")
        raise ConfigurationError("; ".join(problems)) from e
