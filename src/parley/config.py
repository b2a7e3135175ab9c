"""Configuration management for Parley."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="PARLEY_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    home: Path = Field(default=Path.home() / ".parley", description="Parley data directory")
    commands_file: Path | None = Field(default=None, description="JSON file holding custom commands")

    # Input grammar
    command_prefix: str = Field(default="/", min_length=1, max_length=1)
    mention_delimiter: str = Field(default="@", min_length=1, max_length=1)

    # Session behaviour
    user_nickname: str = Field(default="You")
    recent_turn_count: int = Field(default=10, ge=1, description="Turns kept by {session_recent}")
    event_queue_size: int = Field(default=256, ge=1, description="Bound of the streamed event channel")
    pending_turn_limit: int = Field(default=200, ge=1, description="Streamed turns held per session without an open tab")
    default_max_iterations: int = Field(default=5, ge=1)

    # Logging Configuration
    log_level: str = Field(default="INFO")

    def resolve_home(self) -> Path:
        return self.home.expanduser().resolve()

    def resolve_commands_file(self) -> Path:
        if self.commands_file is not None:
            return self.commands_file.expanduser().resolve()
        return self.resolve_home() / "commands.json"


def get_settings(**overrides: object) -> Settings:
    """Get application settings, loading `.env` and `PARLEY_*` variables."""
    return Settings(**overrides)  # type: ignore[arg-type]
