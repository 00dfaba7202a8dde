from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from kanban_mcp.agent import AgentNotFoundError, ClaudeRunner, session_arguments
from kanban_mcp.agent.utils import sanitize_environment
from kanban_mcp.errors import ConfigurationError, SpawnError


def _script(tmp_path: Path, body: str, name: str = "claude") -> Path:
    script = tmp_path / name
    script.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    script.chmod(0o755)
    return script


def test_claude_runner_reports_version(tmp_path: Path) -> None:
    runner = ClaudeRunner(_script(tmp_path, "echo '1.0.42 (Claude Code)'"))
    result = asyncio.run(runner.version())

    assert result.ok
    assert "1.0.42" in result.stdout
    assert result.args[-1] == "--version"


def test_session_arguments() -> None:
    assert session_arguments("abc", resume=False) == ["--session-id", "abc"]
    assert session_arguments("abc", resume=True) == ["--resume", "abc"]


def test_build_invocation_orders_arguments(tmp_path: Path) -> None:
    script = _script(tmp_path, "exit 0")
    runner = ClaudeRunner(script, flags=["--dangerously-skip-permissions", "--print"])

    fresh = runner.build_invocation("do it", cwd=tmp_path, session_id="s-1", resume=False)
    resumed = runner.build_invocation("again", cwd=tmp_path, session_id="s-1", resume=True)

    assert fresh.args == (
        str(script),
        "--session-id",
        "s-1",
        "--dangerously-skip-permissions",
        "--print",
        "-p",
        "do it",
    )
    assert resumed.args[1:3] == ("--resume", "s-1")
    assert resumed.resumed is True
    assert fresh.cwd == tmp_path


def test_start_pipes_output_and_uses_cwd(tmp_path: Path) -> None:
    script = _script(tmp_path, 'pwd\necho "$@"\necho "warn" >&2')
    workdir = tmp_path / "work"
    workdir.mkdir()
    runner = ClaudeRunner(script)

    async def scenario():
        invocation = runner.build_invocation("hello", cwd=workdir, session_id="s", resume=False)
        process = await runner.start(invocation)
        stdout, stderr = await process.communicate()
        return process.returncode, stdout.decode(), stderr.decode()

    code, stdout, stderr = asyncio.run(scenario())
    assert code == 0
    assert stdout.splitlines()[0] == str(workdir.resolve())
    assert "--session-id s -p hello" in stdout
    assert stderr.strip() == "warn"


def test_start_wraps_os_errors(tmp_path: Path) -> None:
    script = tmp_path / "claude"
    script.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
    script.chmod(0o644)
    runner = ClaudeRunner(script)
    invocation = runner.build_invocation("x", cwd=tmp_path, session_id="s", resume=False)

    with pytest.raises(SpawnError):
        asyncio.run(runner.start(invocation))


def test_claude_not_found(tmp_path: Path) -> None:
    with pytest.raises(AgentNotFoundError):
        ClaudeRunner(tmp_path / "missing")
    assert issubclass(AgentNotFoundError, ConfigurationError)


def test_claude_not_on_path(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("kanban_mcp.agent.runner.shutil.which", lambda name: None)
    with pytest.raises(AgentNotFoundError):
        ClaudeRunner()


def test_sanitize_environment_strips_virtualenv(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VIRTUAL_ENV", "/tmp/venv")
    monkeypatch.setenv("PYTHONPATH", "/tmp/src")
    monkeypatch.setenv("FORCE_COLOR", "1")

    env = sanitize_environment({"EXTRA": "1"})

    assert "VIRTUAL_ENV" not in env
    assert "PYTHONPATH" not in env
    assert env["FORCE_COLOR"] == "0"
    assert env["NO_COLOR"] == "1"
    assert env["EXTRA"] == "1"
