"""Async runner for the Claude CLI."""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from ..errors import ConfigurationError, SpawnError
from .utils import sanitize_environment

RESUME_FLAG = "--resume"
SESSION_ID_FLAG = "--session-id"
PROMPT_FLAG = "-p"


class AgentNotFoundError(ConfigurationError):
    """Raised when the Claude CLI executable cannot be located."""


@dataclass(slots=True)
class AgentExecutionResult:
    """Holds the outcome of a blocking Claude CLI invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(slots=True, frozen=True)
class AgentInvocation:
    """Fully built command line for one agent run."""

    args: tuple[str, ...]
    cwd: Path
    session_id: str
    resumed: bool


def session_arguments(session_id: str, *, resume: bool) -> list[str]:
    """Return the session-continuation arguments for an existing or fresh session."""

    return [RESUME_FLAG if resume else SESSION_ID_FLAG, session_id]


class ClaudeRunner:
    """Build and start Claude CLI processes."""

    def __init__(self, executable: Path | None = None, *, flags: Sequence[str] = ()) -> None:
        self._executable_path = self._resolve_executable(executable)
        self._flags = tuple(flags)

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit).expanduser()
            if candidate.exists() and candidate.is_file():
                return candidate
            raise AgentNotFoundError(f"Claude executable not found at {candidate}")

        binary = shutil.which("claude")
        if binary is None:
            raise AgentNotFoundError(
                "Claude CLI executable not found on PATH; set CLAUDE_PATH or install the CLI"
            )
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    @property
    def flags(self) -> tuple[str, ...]:
        return self._flags

    def build_invocation(
        self,
        prompt: str,
        *,
        cwd: Path,
        session_id: str,
        resume: bool,
    ) -> AgentInvocation:
        args = (
            str(self._executable_path),
            *session_arguments(session_id, resume=resume),
            *self._flags,
            PROMPT_FLAG,
            prompt,
        )
        return AgentInvocation(args=args, cwd=Path(cwd), session_id=session_id, resumed=resume)

    async def start(self, invocation: AgentInvocation) -> asyncio.subprocess.Process:
        """Start the process without waiting for it; output streams are piped."""

        try:
            return await asyncio.create_subprocess_exec(
                *invocation.args,
                cwd=str(invocation.cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=sanitize_environment(),
            )
        except OSError as exc:
            raise SpawnError(f"Failed to start {invocation.args[0]}: {exc}") from exc

    async def version(self) -> AgentExecutionResult:
        return await self._invoke("--version")

    async def _invoke(self, *args: str) -> AgentExecutionResult:
        cmd = [str(self._executable_path), *args]
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=sanitize_environment(),
        )
        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return AgentExecutionResult(
            args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr
        )
