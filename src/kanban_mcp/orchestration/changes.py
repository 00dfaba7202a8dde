"""Inspect a project's git working tree for uncommitted changes."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from ..agent.utils import sanitize_environment

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChangedFile:
    status: str
    path: str


@dataclass(slots=True)
class WorkingTreeChanges:
    files: list[ChangedFile] = field(default_factory=list)
    diff: str = ""

    @property
    def has_changes(self) -> bool:
        return bool(self.files)

    def to_payload(self) -> dict[str, object]:
        return {
            "hasChanges": self.has_changes,
            "files": [{"status": item.status, "path": item.path} for item in self.files],
            "diff": self.diff,
        }


def parse_porcelain(output: str) -> list[ChangedFile]:
    """Parse ``git status --porcelain`` (v1) output."""

    files: list[ChangedFile] = []
    for line in output.splitlines():
        if len(line) < 4:
            continue
        code, path = line[:2], line[3:]
        if code == "??":
            status = "untracked"
        elif "R" in code:
            status = "renamed"
            path = path.split(" -> ", 1)[-1]
        elif "D" in code:
            status = "deleted"
        elif "A" in code:
            status = "added"
        else:
            status = "modified"
        files.append(ChangedFile(status=status, path=path.strip('"')))
    return files


class ChangeInspector:
    """Runs git in the project directory."""

    def __init__(self, git_executable: str | None = None) -> None:
        self._git = git_executable or shutil.which("git")

    async def _git_output(self, cwd: Path, *args: str) -> tuple[int, str]:
        process = await asyncio.create_subprocess_exec(
            self._git,
            *args,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=sanitize_environment(),
        )
        stdout, _ = await process.communicate()
        return process.returncode, stdout.decode("utf-8", errors="replace")

    async def inspect(self, path: Path) -> WorkingTreeChanges | None:
        """Return the working tree changes, or None if ``path`` is not a git work tree."""

        if self._git is None:
            logger.debug("git executable not found; skipping change inspection")
            return None
        try:
            code, _ = await self._git_output(path, "rev-parse", "--is-inside-work-tree")
            if code != 0:
                return None
            code, status_output = await self._git_output(path, "status", "--porcelain")
            if code != 0:
                return None
            _, diff = await self._git_output(path, "diff", "--stat")
        except OSError as exc:
            logger.warning(
                "git change inspection failed", extra={"path": str(path), "error": str(exc)}
            )
            return None
        return WorkingTreeChanges(files=parse_porcelain(status_output), diff=diff)


__all__ = [
    "ChangeInspector",
    "ChangedFile",
    "WorkingTreeChanges",
    "parse_porcelain",
]
