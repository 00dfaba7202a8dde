"""In-memory registry of active task runs."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable
from uuid import uuid4

from ..errors import TaskAlreadyRunningError, TaskCapacityError
from ..prompts import Phase

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class TaskRun:
    """One active agent process tied to a ticket."""

    ticket_id: str
    phase: Phase
    log_file: Path
    start_time: float
    started_at: datetime
    run_id: str = field(default_factory=lambda: uuid4().hex)
    process: asyncio.subprocess.Process | None = None

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process is not None else None

    def elapsed(self, now: float) -> int:
        return max(0, math.floor(now - self.start_time))


class TaskRegistry:
    """Maps ticket ids to their active :class:`TaskRun`.

    Insert and remove happen under one lock, which makes ``reserve`` an atomic
    insert-if-absent: two concurrent starts for the same ticket yield one run.
    """

    def __init__(
        self,
        *,
        max_concurrent: int = 0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._runs: dict[str, TaskRun] = {}
        self._lock = asyncio.Lock()
        self._max_concurrent = max_concurrent
        self._clock = clock or time.monotonic

    async def reserve(self, ticket_id: str, *, phase: Phase, log_file: Path) -> TaskRun:
        async with self._lock:
            if ticket_id in self._runs:
                raise TaskAlreadyRunningError(ticket_id)
            if self._max_concurrent and len(self._runs) >= self._max_concurrent:
                raise TaskCapacityError(
                    f"Task capacity reached ({self._max_concurrent} running); try again later"
                )
            run = TaskRun(
                ticket_id=ticket_id,
                phase=phase,
                log_file=log_file,
                start_time=self._clock(),
                started_at=datetime.now(timezone.utc),
            )
            self._runs[ticket_id] = run
        logger.debug("Reserved task run", extra={"ticket_id": ticket_id, "phase": phase})
        return run

    async def remove(self, ticket_id: str, run: TaskRun | None = None) -> TaskRun | None:
        """Remove the ticket's run; when ``run`` is given, only if it is still the current one."""

        async with self._lock:
            current = self._runs.get(ticket_id)
            if current is None or (run is not None and current is not run):
                return None
            del self._runs[ticket_id]
            return current

    async def clear(self) -> list[TaskRun]:
        async with self._lock:
            runs = list(self._runs.values())
            self._runs.clear()
            return runs

    def get(self, ticket_id: str) -> TaskRun | None:
        return self._runs.get(ticket_id)

    def is_running(self, ticket_id: str) -> bool:
        return ticket_id in self._runs

    def is_current(self, run: TaskRun) -> bool:
        return self._runs.get(run.ticket_id) is run

    def elapsed(self, ticket_id: str) -> int | None:
        run = self._runs.get(ticket_id)
        if run is None:
            return None
        return run.elapsed(self._clock())

    def snapshot(self) -> list[dict[str, object]]:
        now = self._clock()
        return [
            {
                "ticketId": run.ticket_id,
                "phase": run.phase,
                "pid": run.pid,
                "runTime": run.elapsed(now),
                "startedAt": run.started_at.isoformat(),
            }
            for run in self._runs.values()
        ]

    def __len__(self) -> int:
        return len(self._runs)


__all__ = ["TaskRegistry", "TaskRun"]
