"""Control-surface operations over tickets and their agent runs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable

from ..agent import ClaudeRunner
from ..config import KanbanSettings
from ..errors import ConfigurationError, WorkflowError
from ..prompts import PromptBuilder, PromptLoader
from ..storage import LogSink, Project, ProjectStore, Ticket, TicketStatus, TicketStore
from ..tracker import JiraClient, TrackerSync
from ..tracker.importer import select_new_issues, ticket_fields_from_issue
from .changes import ChangeInspector
from .launcher import LaunchRequest, ProcessLauncher
from .registry import TaskRegistry, TaskRun
from .workflow import (
    Trigger,
    WorkflowState,
    apply_exit,
    apply_rework,
    ensure_allowed,
    mark_done,
    mark_running,
    mark_stopped,
    state_of,
    tracker_target,
)

logger = logging.getLogger(__name__)

NO_LOG_MESSAGE = "No log available yet."


class TaskOrchestrator:
    """Owns the ticket workflow: launches, stops and reconciles agent runs."""

    def __init__(
        self,
        *,
        settings: KanbanSettings,
        store: TicketStore,
        projects: ProjectStore,
        log_sink: LogSink,
        registry: TaskRegistry | None = None,
        prompts: PromptLoader | None = None,
        runner: ClaudeRunner | None = None,
        tracker: TrackerSync | None = None,
        jira: JiraClient | None = None,
        inspector: ChangeInspector | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._projects = projects
        self._log_sink = log_sink
        self._registry = registry or TaskRegistry(max_concurrent=settings.max_concurrent_tasks)
        self._builder = PromptBuilder(
            prompts or PromptLoader(settings.prompt_paths), jira_host=settings.jira_host
        )
        self._runner = runner
        self._jira = jira
        self._tracker = tracker or TrackerSync(jira)
        self._inspector = inspector or ChangeInspector()
        self._launcher = ProcessLauncher(
            store=store,
            registry=self._registry,
            log_sink=log_sink,
            runner_provider=self._require_runner,
            on_exit=self._handle_exit,
            tail_chars=settings.output_tail_chars,
        )

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    @property
    def store(self) -> TicketStore:
        return self._store

    @property
    def projects(self) -> ProjectStore:
        return self._projects

    @property
    def launcher(self) -> ProcessLauncher:
        return self._launcher

    @property
    def tracker(self) -> TrackerSync:
        return self._tracker

    def _require_runner(self) -> ClaudeRunner:
        if self._runner is None:
            explicit = Path(self._settings.claude_path) if self._settings.claude_path else None
            self._runner = ClaudeRunner(explicit, flags=self._settings.claude_flags)
        return self._runner

    def _project_for(self, ticket: Ticket, override: str | None = None) -> Project:
        project = self._projects.get(override or ticket.project_id)
        if not Path(project.path).is_dir():
            raise ConfigurationError(
                f"Project '{project.id}' path does not exist or is not a directory: {project.path}"
            )
        return project

    def _mirror(self, ticket: Ticket, previous: WorkflowState, current: WorkflowState) -> None:
        target = tracker_target(previous, current)
        if target is not None:
            self._tracker.schedule(ticket.jira_key, target)

    # Ticket records -----------------------------------------------------

    async def list_tickets(self) -> list[dict[str, Any]]:
        return [ticket.to_payload() for ticket in await self._store.list()]

    async def get_ticket(self, ticket_id: str) -> dict[str, Any]:
        return (await self._store.get(ticket_id)).to_payload()

    async def create_ticket(self, fields: dict[str, Any]) -> dict[str, Any]:
        return (await self._store.create(fields)).to_payload()

    async def update_ticket(self, ticket_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        return (await self._store.patch(ticket_id, fields)).to_payload()

    async def delete_ticket(self, ticket_id: str) -> dict[str, Any]:
        await self._store.get(ticket_id)
        await self._terminate(ticket_id)
        await self._store.delete(ticket_id)
        self._log_sink.delete(ticket_id)
        return {"success": True}

    def list_projects(self) -> list[dict[str, Any]]:
        return [
            project.model_dump(mode="json", by_alias=True) for project in self._projects.list()
        ]

    async def reset(self) -> dict[str, Any]:
        await self._launcher.shutdown()
        await self._store.reset()
        removed = self._log_sink.clear()
        logger.warning("Reset all tickets and logs", extra={"logs_removed": removed})
        return {"success": True, "message": "All tickets and logs were removed."}

    # Workflow triggers --------------------------------------------------

    async def start(self, ticket_id: str, *, project_id: str | None = None) -> dict[str, Any]:
        ticket = await self._store.get(ticket_id)
        previous = ensure_allowed(ticket, Trigger.START)
        project = self._project_for(ticket, project_id)

        def _prepare(current: Ticket) -> None:
            ensure_allowed(current, Trigger.START)
            if project_id:
                current.project_id = project_id

        run = await self._launcher.launch(
            LaunchRequest(
                ticket_id=ticket_id,
                phase="start",
                cwd=Path(project.path),
                build_prompt=lambda current: self._builder.start(current, project),
                markers=lambda current: [
                    ("🚀", f"Task started: {current.title}"),
                    ("🤖", "Invoking Claude..."),
                ],
                prepare=_prepare,
                on_spawned=lambda current: mark_running(current, "start"),
            )
        )
        ticket = await self._store.get(ticket_id)
        self._mirror(ticket, previous, WorkflowState.RUNNING)
        return {
            "success": True,
            "message": "Claude task started.",
            "ticketId": ticket_id,
            "logFile": str(run.log_file),
            "sessionId": ticket.session_id,
        }

    async def stop(self, ticket_id: str) -> dict[str, Any]:
        ticket = await self._store.get(ticket_id)
        run = await self._terminate(ticket_id)
        if run is None and ticket.status is not TicketStatus.IN_PROGRESS:
            raise WorkflowError(f"Ticket '{ticket_id}' has no running task to stop")
        self._log_sink.append_marker(ticket_id, "⏹️", "Task stopped by request")
        await self._store.update(ticket_id, mark_stopped)
        return {"success": True, "message": "Task stopped."}

    async def approve(self, ticket_id: str) -> dict[str, Any]:
        """Approve a reviewed ticket: commit phase, or direct completion for checks."""

        ticket = await self._store.get(ticket_id)
        if ticket.is_check:
            return await self.complete(ticket_id)
        previous = ensure_allowed(ticket, Trigger.APPROVE)
        project = self._project_for(ticket)

        changes = await self._inspector.inspect(Path(project.path))
        if changes is not None and not changes.has_changes:
            def _finish(current: Ticket) -> None:
                ensure_allowed(current, Trigger.APPROVE)
                mark_done(current)

            ticket = await self._store.update(ticket_id, _finish)
            self._log_sink.append_marker(
                ticket_id, "✅", "Approved with no changes; commit skipped"
            )
            self._mirror(ticket, previous, WorkflowState.DONE)
            return {
                "success": True,
                "message": "No changes to commit; ticket completed.",
                "skippedCommit": True,
            }

        await self._launcher.launch(
            LaunchRequest(
                ticket_id=ticket_id,
                phase="approve",
                cwd=Path(project.path),
                build_prompt=lambda current: self._builder.approve(current, project),
                markers=lambda current: [("✅", "Approved - commit/push requested")],
                prepare=lambda current: ensure_allowed(current, Trigger.APPROVE),
                on_spawned=lambda current: mark_running(current, "approve"),
            )
        )
        return {
            "success": True,
            "message": "Claude is committing and pushing the changes.",
            "skippedCommit": False,
        }

    async def complete(self, ticket_id: str) -> dict[str, Any]:
        ticket = await self._store.get(ticket_id)
        previous = ensure_allowed(ticket, Trigger.COMPLETE)

        def _finish(current: Ticket) -> None:
            ensure_allowed(current, Trigger.COMPLETE)
            mark_done(current)

        ticket = await self._store.update(ticket_id, _finish)
        self._log_sink.append_marker(ticket_id, "✅", "Check completed")
        self._mirror(ticket, previous, WorkflowState.DONE)
        return {"success": True, "message": "Ticket completed.", "skippedCommit": True}

    async def rework(self, ticket_id: str, request: str) -> dict[str, Any]:
        request = (request or "").strip()
        ticket = await self._store.get(ticket_id)
        ensure_allowed(ticket, Trigger.REWORK)
        project = self._project_for(ticket)

        def _prompt(current: Ticket) -> str:
            preview = current.model_copy()
            apply_rework(preview, request)
            return self._builder.rework(preview, project, request)

        def _spawned(current: Ticket) -> None:
            apply_rework(current, request)
            mark_running(current, "rework")

        await self._launcher.launch(
            LaunchRequest(
                ticket_id=ticket_id,
                phase="rework",
                cwd=Path(project.path),
                build_prompt=_prompt,
                markers=lambda current: [
                    ("🔄", f"Rework request #{current.rework_count + 1}"),
                    ("📝", f"Request: {request}"),
                ],
                prepare=lambda current: ensure_allowed(current, Trigger.REWORK),
                on_spawned=_spawned,
            )
        )
        ticket = await self._store.get(ticket_id)
        return {
            "success": True,
            "message": "Rework started.",
            "reworkCount": ticket.rework_count,
        }

    async def _handle_exit(self, run: TaskRun, output_tail: str, exit_code: int | None) -> None:
        def _advance(current: Ticket) -> None:
            apply_exit(current, run.phase, output_tail=output_tail, exit_code=exit_code)

        ticket = await self._store.update(run.ticket_id, _advance)
        self._mirror(ticket, WorkflowState.RUNNING, state_of(ticket))
        logger.info(
            "Ticket advanced after agent exit",
            extra={
                "ticket_id": run.ticket_id,
                "phase": run.phase,
                "status": ticket.status.value,
                "exit_code": exit_code,
            },
        )

    async def _terminate(self, ticket_id: str) -> TaskRun | None:
        run = await self._registry.remove(ticket_id)
        if run is None:
            return None
        process = run.process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
        logger.info("Terminated task run", extra={"ticket_id": ticket_id, "pid": run.pid})
        return run

    # Read path ----------------------------------------------------------

    async def task_log(self, ticket_id: str) -> dict[str, Any]:
        await self._store.get(ticket_id)
        text = self._log_sink.read(ticket_id)
        return {
            "log": text if text is not None else NO_LOG_MESSAGE,
            "isRunning": self._registry.is_running(ticket_id),
            "runTime": self._registry.elapsed(ticket_id),
        }

    def running(self) -> list[dict[str, Any]]:
        return self._registry.snapshot()

    async def changes(self, ticket_id: str) -> dict[str, Any]:
        ticket = await self._store.get(ticket_id)
        project = self._project_for(ticket)
        changes = await self._inspector.inspect(Path(project.path))
        if changes is None:
            return {"hasChanges": False, "files": [], "diff": "", "gitRepository": False}
        return {**changes.to_payload(), "gitRepository": True}

    # Startup ------------------------------------------------------------

    async def reconcile_orphans(self) -> list[dict[str, Any]]:
        """Mark in-progress tickets without a live run as stopped."""

        actions: list[dict[str, Any]] = []
        for ticket in await self._store.list():
            if state_of(ticket) is not WorkflowState.RUNNING:
                continue
            if self._registry.is_running(ticket.id):
                continue
            await self._store.update(ticket.id, mark_stopped)
            self._log_sink.append_marker(
                ticket.id, "⏹️", "No running process found after restart; marked as stopped"
            )
            actions.append(
                {"ticketId": ticket.id, "sessionId": ticket.session_id, "status": "stopped"}
            )
            logger.warning(
                "Orphaned in-progress ticket marked as stopped",
                extra={"ticket_id": ticket.id, "session_id": ticket.session_id},
            )
        return actions

    async def shutdown(self) -> None:
        await self._launcher.shutdown()
        await self._tracker.drain()
        if self._jira is not None:
            await self._jira.close()

    # Tracker ------------------------------------------------------------

    def _require_jira(self) -> JiraClient:
        if self._jira is None:
            raise ConfigurationError(
                "Jira is not configured; set JIRA_HOST, JIRA_EMAIL and JIRA_API_TOKEN"
            )
        return self._jira

    async def tracker_issues(self) -> list[dict[str, Any]]:
        return await self._require_jira().search_assigned_issues()

    async def tracker_test(self) -> dict[str, Any]:
        if self._jira is None:
            return {"connected": False, "error": "Jira is not configured"}
        return await self._jira.test_connection()

    async def import_issues(self, issues: Iterable[dict[str, Any]]) -> dict[str, Any]:
        existing = {ticket.jira_key for ticket in await self._store.list() if ticket.jira_key}
        fresh = select_new_issues(issues, existing)
        created = await self._store.create_many(
            [ticket_fields_from_issue(issue) for issue in fresh]
        )
        logger.info("Imported tracker issues", extra={"imported": len(created)})
        return {
            "success": True,
            "imported": len(created),
            "tickets": [ticket.to_payload() for ticket in created],
        }


__all__ = ["NO_LOG_MESSAGE", "TaskOrchestrator"]
