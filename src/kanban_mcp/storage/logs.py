"""Append-only per-ticket log files."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TextIO

logger = logging.getLogger(__name__)

ERROR_TAG = "[ERROR]"


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class TicketLog:
    """An open append handle on one ticket's log.

    ``close()`` may be reached from both the normal exit path and the error
    path of a run; only the first call closes the handle and later writes are
    dropped.
    """

    def __init__(self, path: Path, handle: TextIO) -> None:
        self._path = path
        self._handle = handle
        self._closed = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, text: str) -> None:
        if self._closed or not text:
            return
        try:
            self._handle.write(text)
            self._handle.flush()
        except (OSError, ValueError) as exc:
            logger.warning(
                "Failed to write ticket log",
                extra={"path": str(self._path), "error": str(exc)},
            )

    def marker(self, emoji: str, message: str) -> None:
        self.write(f"[{timestamp()}] {emoji} {message}\n")

    def error(self, text: str) -> None:
        self.write(f"{ERROR_TAG} {text}")

    def close(self) -> bool:
        if self._closed:
            return False
        self._closed = True
        try:
            self._handle.close()
        except OSError as exc:  # pragma: no cover - filesystem specific
            logger.warning(
                "Failed to close ticket log",
                extra={"path": str(self._path), "error": str(exc)},
            )
        return True


class LogSink:
    """Owns the ``logs/`` directory; one ``ticket-<id>.log`` file per ticket."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, ticket_id: str) -> Path:
        return self._directory / f"ticket-{ticket_id}.log"

    def open(self, ticket_id: str) -> TicketLog:
        path = self.path_for(ticket_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        return TicketLog(path, path.open("a", encoding="utf-8"))

    def append_marker(self, ticket_id: str, emoji: str, message: str) -> None:
        log = self.open(ticket_id)
        try:
            log.marker(emoji, message)
        finally:
            log.close()

    def read(self, ticket_id: str) -> str | None:
        path = self.path_for(ticket_id)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8", errors="replace")

    def delete(self, ticket_id: str) -> bool:
        path = self.path_for(ticket_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def clear(self) -> int:
        if not self._directory.exists():
            return 0
        removed = 0
        for path in self._directory.glob("ticket-*.log"):
            path.unlink()
            removed += 1
        return removed


__all__ = ["ERROR_TAG", "LogSink", "TicketLog", "timestamp"]
