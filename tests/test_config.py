from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from kanban_mcp.config import DEFAULT_CLAUDE_FLAGS, KanbanSettings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("CLAUDE_FLAGS", "KANBAN_DATA_DIR", "PORT", "JIRA_HOST"):
        monkeypatch.delenv(name, raising=False)
    settings = KanbanSettings(_env_file=None)

    assert settings.claude_flags == DEFAULT_CLAUDE_FLAGS
    assert settings.port == 4001
    assert settings.max_concurrent_tasks == 0
    assert settings.tickets_file == settings.data_dir / "tickets.json"
    assert settings.logs_dir == settings.data_dir / "logs"
    assert settings.jira_configured is False


def test_environment_parsing(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("KANBAN_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("CLAUDE_FLAGS", "--print --verbose")
    monkeypatch.setenv("KANBAN_PROMPT_PATHS", os.pathsep.join([str(tmp_path / "a"), "b"]))
    monkeypatch.setenv("KANBAN_LOG_LEVEL", "debug")
    monkeypatch.setenv("PORT", "5050")
    monkeypatch.setenv("JIRA_HOST", "acme.atlassian.net")
    monkeypatch.setenv("JIRA_EMAIL", "dev@acme.io")
    monkeypatch.setenv("JIRA_API_TOKEN", "token")

    settings = KanbanSettings(_env_file=None)

    assert settings.data_dir == tmp_path
    assert settings.claude_flags == ("--print", "--verbose")
    assert settings.prompt_paths == (tmp_path / "a", Path("b"))
    assert settings.log_level == "DEBUG"
    assert settings.port == 5050
    assert settings.jira_configured is True
    assert "token" not in repr(settings)


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("KANBAN_LOG_LEVEL", "chatty"),
        ("KANBAN_MAX_CONCURRENT_TASKS", "-1"),
        ("KANBAN_OUTPUT_TAIL_CHARS", "0"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch, name: str, value: str):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        KanbanSettings(_env_file=None)


def test_field_names_are_accepted(tmp_path: Path) -> None:
    settings = KanbanSettings(_env_file=None, data_dir=tmp_path, claude_flags=["--x"])
    assert settings.data_dir == tmp_path
    assert settings.claude_flags == ("--x",)
