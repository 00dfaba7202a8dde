"""Configuration management for Kanban MCP."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_CLAUDE_FLAGS: tuple[str, ...] = ("--dangerously-skip-permissions", "--print")


class KanbanSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    data_dir: Path = Field(default=Path("./data"), validation_alias="KANBAN_DATA_DIR")
    claude_path: str | None = Field(default=None, validation_alias="CLAUDE_PATH")
    claude_flags: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_CLAUDE_FLAGS, validation_alias="CLAUDE_FLAGS"
    )
    jira_host: str = Field(default="", validation_alias="JIRA_HOST")
    jira_email: str = Field(default="", validation_alias="JIRA_EMAIL")
    jira_api_token: SecretStr = Field(default=SecretStr(""), validation_alias="JIRA_API_TOKEN")
    jira_timeout_seconds: float = Field(default=10.0, validation_alias="JIRA_TIMEOUT_SECONDS")
    output_tail_chars: int = Field(default=2000, validation_alias="KANBAN_OUTPUT_TAIL_CHARS")
    max_concurrent_tasks: int = Field(default=0, validation_alias="KANBAN_MAX_CONCURRENT_TASKS")
    prompt_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(), validation_alias="KANBAN_PROMPT_PATHS"
    )
    host: str = Field(default="127.0.0.1", validation_alias="KANBAN_HOST")
    port: int = Field(default=4001, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="KANBAN_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "KANBAN_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("claude_flags", mode="before")
    @classmethod
    def _parse_claude_flags(cls, value):
        if value is None:
            return DEFAULT_CLAUDE_FLAGS
        if isinstance(value, (list, tuple)):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            return tuple(value.split())
        raise TypeError("CLAUDE_FLAGS must be a list of flags or a whitespace-separated string")

    @field_validator("prompt_paths", mode="before")
    @classmethod
    def _parse_prompt_paths(cls, value):
        if value is None or value == "":
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts)
        raise TypeError("KANBAN_PROMPT_PATHS must be a list of paths or a path-separated string")

    @field_validator("output_tail_chars")
    @classmethod
    def _validate_output_tail_chars(cls, value: int) -> int:
        if value < 1:
            raise ValueError("KANBAN_OUTPUT_TAIL_CHARS must be >= 1")
        return value

    @field_validator("max_concurrent_tasks")
    @classmethod
    def _validate_max_concurrent_tasks(cls, value: int) -> int:
        if value < 0:
            raise ValueError("KANBAN_MAX_CONCURRENT_TASKS must be >= 0 (0 disables the limit)")
        return value

    @property
    def jira_configured(self) -> bool:
        return bool(self.jira_host and self.jira_email and self.jira_api_token.get_secret_value())

    @property
    def tickets_file(self) -> Path:
        return self.data_dir / "tickets.json"

    @property
    def projects_file(self) -> Path:
        return self.data_dir / "projects.json"

    @property
    def logs_dir(self) -> Path:
        return self.data_dir / "logs"


@lru_cache(maxsize=1)
def get_settings() -> KanbanSettings:
    """Return cached settings instance."""

    settings = KanbanSettings()
    settings.data_dir = settings.data_dir.expanduser().resolve()
    settings.prompt_paths = tuple(path.expanduser().resolve() for path in settings.prompt_paths)
    return settings


__all__ = ["DEFAULT_CLAUDE_FLAGS", "KanbanSettings", "get_settings"]
