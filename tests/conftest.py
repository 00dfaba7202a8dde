from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from kanban_mcp.config import KanbanSettings
from kanban_mcp.orchestration import TaskOrchestrator
from kanban_mcp.storage import LogSink, Project, ProjectStore, TicketStore

# Records its arguments, prints the session flags, writes one stderr line and exits.
QUICK_AGENT = """
printf '%s\\n' "$@" >> "{args_file}"
echo "mode=$1 session=$2"
echo "agent warning" >&2
exit {exit_code}
"""

# Stays alive until terminated; exec hands SIGTERM straight to sleep.
SLOW_AGENT = """
printf '%s\\n' "$@" >> "{args_file}"
echo "mode=$1 session=$2"
exec sleep 30
"""


def write_agent(directory: Path, body: str, *, name: str = "claude") -> Path:
    path = directory / name
    path.write_text("#!/bin/sh\n" + body.lstrip("\n"), encoding="utf-8")
    path.chmod(0o755)
    return path


@pytest.fixture
def args_file(tmp_path: Path) -> Path:
    return tmp_path / "agent-args.txt"


@pytest.fixture
def quick_agent(tmp_path: Path, args_file: Path) -> Path:
    return write_agent(tmp_path, QUICK_AGENT.format(args_file=args_file, exit_code=0))


@pytest.fixture
def slow_agent(tmp_path: Path, args_file: Path) -> Path:
    return write_agent(tmp_path, SLOW_AGENT.format(args_file=args_file), name="claude-slow")


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., KanbanSettings]:
    def factory(agent: Path | None = None, **overrides: Any) -> KanbanSettings:
        values: dict[str, Any] = {
            "data_dir": tmp_path / "data",
            "claude_path": str(agent) if agent is not None else None,
            "claude_flags": (),
        }
        values.update(overrides)
        return KanbanSettings(_env_file=None, **values)

    return factory


@pytest.fixture
def make_orchestrator(
    make_settings: Callable[..., KanbanSettings], project_dir: Path
) -> Callable[..., TaskOrchestrator]:
    def factory(agent: Path | None = None, **kwargs: Any) -> TaskOrchestrator:
        settings_overrides = kwargs.pop("settings", {})
        settings = make_settings(agent, **settings_overrides)
        projects = ProjectStore(settings.projects_file)
        if not settings.projects_file.exists():
            projects.add(Project(id="p1", name="Demo", path=str(project_dir)))
        return TaskOrchestrator(
            settings=settings,
            store=TicketStore(settings.tickets_file),
            projects=projects,
            log_sink=LogSink(settings.logs_dir),
            **kwargs,
        )

    return factory
