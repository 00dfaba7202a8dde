"""Spawn agent processes for tickets and supervise them until exit."""

from __future__ import annotations

import asyncio
import codecs
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from ..agent import AgentInvocation, ClaudeRunner
from ..errors import SpawnError, WorkflowError
from ..prompts import Phase
from ..storage import LogSink, Ticket, TicketLog, TicketStore
from .registry import TaskRegistry, TaskRun
from .workflow import assign_session

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096

ExitHandler = Callable[[TaskRun, str, int | None], Awaitable[None]]

COMPLETION_LABELS: dict[str, str] = {
    "start": "Task finished",
    "approve": "Commit/push finished",
    "rework": "Rework finished",
}


class OutputTail:
    """Keeps the last ``limit`` characters of a stream of text."""

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._buffer = ""

    def append(self, text: str) -> None:
        self._buffer += text
        if len(self._buffer) > self._limit * 2:
            self._buffer = self._buffer[-self._limit :]

    @property
    def text(self) -> str:
        return self._buffer[-self._limit :]


@dataclass(slots=True)
class LaunchRequest:
    """Everything the launcher needs to run one phase for one ticket.

    ``prepare`` runs inside the store's read-modify-write before the session is
    assigned and must raise if the launch is no longer legal. ``on_spawned``
    is persisted only once the process exists.
    """

    ticket_id: str
    phase: Phase
    cwd: Path
    build_prompt: Callable[[Ticket], str]
    markers: Callable[[Ticket], list[tuple[str, str]]]
    prepare: Callable[[Ticket], None]
    on_spawned: Callable[[Ticket], None]


class ProcessLauncher:
    """Starts one agent process per launch request and reports its exit."""

    def __init__(
        self,
        *,
        store: TicketStore,
        registry: TaskRegistry,
        log_sink: LogSink,
        runner_provider: Callable[[], ClaudeRunner],
        on_exit: ExitHandler,
        tail_chars: int = 2000,
    ) -> None:
        self._store = store
        self._registry = registry
        self._log_sink = log_sink
        self._runner_provider = runner_provider
        self._on_exit = on_exit
        self._tail_chars = tail_chars
        self._watchers: dict[asyncio.Task[None], TaskRun] = {}

    async def launch(self, request: LaunchRequest) -> TaskRun:
        """Spawn the agent and return as soon as the process exists."""

        runner = self._runner_provider()
        run = await self._registry.reserve(
            request.ticket_id,
            phase=request.phase,
            log_file=self._log_sink.path_for(request.ticket_id),
        )
        log: TicketLog | None = None
        process: asyncio.subprocess.Process | None = None
        try:
            resumed = False

            def _prepare(ticket: Ticket) -> None:
                nonlocal resumed
                request.prepare(ticket)
                resumed = assign_session(ticket)

            ticket = await self._store.update(request.ticket_id, _prepare)
            invocation = runner.build_invocation(
                request.build_prompt(ticket),
                cwd=request.cwd,
                session_id=ticket.session_id or "",
                resume=resumed,
            )

            log = self._log_sink.open(request.ticket_id)
            for emoji, message in request.markers(ticket):
                log.marker(emoji, message)
            log.marker("📂", f"Working directory: {invocation.cwd}")
            if invocation.resumed:
                log.marker("🔄", f"Resuming session: {invocation.session_id}")
            else:
                log.marker("🆕", f"New session: {invocation.session_id}")

            try:
                process = await runner.start(invocation)
            except SpawnError as exc:
                log.error(f"Spawn failed: {exc}\n")
                logger.error(
                    "Agent spawn failed",
                    extra={
                        "ticket_id": request.ticket_id,
                        "phase": request.phase,
                        "error": str(exc),
                    },
                )
                raise

            run.process = process
            stopped_during_launch = False

            def _spawned(ticket: Ticket) -> None:
                nonlocal stopped_during_launch
                # A stop that removed the run while the spawn was in flight wins.
                if not self._registry.is_current(run):
                    stopped_during_launch = True
                    return
                request.on_spawned(ticket)

            await self._store.update(request.ticket_id, _spawned)
            if stopped_during_launch:
                await self._kill(process)
                log.marker("⏹️", "Run was stopped while the agent was starting; process killed")
                logger.warning(
                    "Agent killed after a stop during launch",
                    extra={"ticket_id": request.ticket_id, "phase": request.phase},
                )
                raise WorkflowError(
                    f"Ticket '{request.ticket_id}' was stopped while its agent was starting"
                )
        except BaseException:
            await self._registry.remove(request.ticket_id, run)
            if process is not None and process.returncode is None:
                process.kill()
            if log is not None:
                log.close()
            raise

        watcher = asyncio.create_task(
            self._supervise(run, log, process, invocation),
            name=f"ticket-{request.ticket_id}-{request.phase}",
        )
        self._watchers[watcher] = run
        watcher.add_done_callback(lambda task: self._watchers.pop(task, None))

        logger.info(
            "Spawned agent",
            extra={
                "ticket_id": request.ticket_id,
                "phase": request.phase,
                "pid": process.pid,
                "session_id": invocation.session_id,
                "resumed": invocation.resumed,
            },
        )
        return run

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        log: TicketLog,
        tail: OutputTail,
        *,
        is_error: bool,
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                tail.append(text)
                if is_error:
                    log.error(text)
                else:
                    log.write(text)
            if not chunk:
                return

    async def _supervise(
        self,
        run: TaskRun,
        log: TicketLog,
        process: asyncio.subprocess.Process,
        invocation: AgentInvocation,
    ) -> None:
        tail = OutputTail(self._tail_chars)
        exit_code: int | None = None
        try:
            await asyncio.gather(
                self._pump(process.stdout, log, tail, is_error=False),
                self._pump(process.stderr, log, tail, is_error=True),
            )
            exit_code = await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
            log.close()
            await self._registry.remove(run.ticket_id, run)
            raise

        label = COMPLETION_LABELS.get(run.phase, "Task finished")
        log.write("\n")
        log.marker("✅", f"{label} (exit code: {exit_code})")
        log.close()

        if await self._registry.remove(run.ticket_id, run) is None:
            logger.info(
                "Agent exited after its run was stopped; ticket left unchanged",
                extra={"ticket_id": run.ticket_id, "phase": run.phase, "exit_code": exit_code},
            )
            return

        logger.info(
            "Agent exited",
            extra={
                "ticket_id": run.ticket_id,
                "phase": run.phase,
                "exit_code": exit_code,
                "session_id": invocation.session_id,
            },
        )
        try:
            await self._on_exit(run, tail.text, exit_code)
        except Exception:
            logger.exception(
                "Failed to advance ticket after agent exit",
                extra={"ticket_id": run.ticket_id, "phase": run.phase},
            )

    async def wait_idle(self) -> None:
        """Wait until every supervised process has exited and been handled."""

        while self._watchers:
            await asyncio.gather(*list(self._watchers), return_exceptions=True)

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()

    async def shutdown(self) -> None:
        """Terminate every supervised process, including runs already released by a stop."""

        runs = await self._registry.clear()
        runs.extend(run for run in self._watchers.values() if run not in runs)
        for run in runs:
            if run.process is not None and run.process.returncode is None:
                try:
                    run.process.terminate()
                except ProcessLookupError:
                    pass
        await self.wait_idle()


__all__ = ["COMPLETION_LABELS", "LaunchRequest", "OutputTail", "ProcessLauncher"]
