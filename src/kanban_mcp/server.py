"""FastMCP server bootstrap for Kanban MCP."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from fastmcp import Context, FastMCP

from . import __version__
from .agent import AgentNotFoundError, ClaudeRunner
from .config import KanbanSettings, get_settings
from .orchestration import TaskOrchestrator
from .prompts import PromptLoadError, PromptLoader
from .storage import LogSink, ProjectStore, TicketStore
from .tools import register_tools
from .tracker import JiraClient, TrackerSync


def configure_logging(level: str) -> None:
    """Configure root logging for the Kanban server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def build_orchestrator(
    settings: KanbanSettings,
    runner: ClaudeRunner | None = None,
    jira: JiraClient | None = None,
) -> TaskOrchestrator:
    """Wire stores, prompts, the agent runner and the tracker into an orchestrator."""

    if jira is None and settings.jira_configured:
        jira = JiraClient(
            host=settings.jira_host,
            email=settings.jira_email,
            api_token=settings.jira_api_token.get_secret_value(),
            timeout_seconds=settings.jira_timeout_seconds,
        )
    return TaskOrchestrator(
        settings=settings,
        store=TicketStore(settings.tickets_file),
        projects=ProjectStore(settings.projects_file),
        log_sink=LogSink(settings.logs_dir),
        prompts=PromptLoader(settings.prompt_paths),
        runner=runner,
        tracker=TrackerSync(jira),
        jira=jira,
    )


def create_server(
    settings: Optional[KanbanSettings] = None,
    runner: ClaudeRunner | None = None,
    jira: JiraClient | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server, reconcile orphaned tickets and register tools."""

    settings = settings or get_settings()

    agent_metadata: dict[str, Any] = {
        "available": False,
        "version": None,
        "error": None,
    }

    if runner is None:
        try:
            runner = ClaudeRunner(
                Path(settings.claude_path) if settings.claude_path else None,
                flags=settings.claude_flags,
            )
            agent_metadata["available"] = True
            version_result = _run_sync(runner.version())
            if version_result.ok:
                agent_metadata["version"] = version_result.stdout.strip()
            else:
                agent_metadata["error"] = (
                    version_result.stderr.strip() or "Claude version command failed"
                )
        except AgentNotFoundError as exc:
            agent_metadata["error"] = str(exc)
            runner = None
    else:
        agent_metadata["available"] = True

    orchestrator = build_orchestrator(settings, runner=runner, jira=jira)
    prompt_loader = PromptLoader(settings.prompt_paths)

    # A fresh process owns no agent runs, so every running ticket is an orphan.
    reconcile_actions: list[dict[str, Any]] = _run_sync(orchestrator.reconcile_orphans())

    server = FastMCP(
        name="Kanban MCP",
        version=__version__,
        instructions=(
            "Kanban MCP drives Claude agents through a ticket board: backlog, in progress, "
            "review and done. Use the tools to create tickets, start and stop agent runs, "
            "read run logs, approve or request rework."
        ),
    )

    async def status_snapshot() -> dict[str, Any]:
        """Summarize runtime state: agent, tracker, tickets and running tasks."""

        try:
            templates = prompt_loader.load_all()
            template_ids = sorted(templates.keys())
            template_error: str | None = None
        except PromptLoadError as exc:
            template_ids = []
            template_error = str(exc)

        status_counts: dict[str, int] = {}
        tickets = await orchestrator.list_tickets()
        for ticket in tickets:
            status = ticket.get("status", "unknown")
            status_counts[status] = status_counts.get(status, 0) + 1

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "data_dir": str(settings.data_dir),
            "prompts": {
                "count": len(template_ids),
                "ids": template_ids,
                "error": template_error,
            },
            "agent": {
                "path": settings.claude_path,
                "flags": list(settings.claude_flags),
                **agent_metadata,
            },
            "jira": {
                "configured": settings.jira_configured,
                "host": settings.jira_host or None,
            },
            "tickets": {
                "count": len(tickets),
                "status_counts": status_counts,
            },
            "tasks": {
                "running": orchestrator.running(),
                "max_concurrent": settings.max_concurrent_tasks,
                "reconciled": reconcile_actions[-5:],
            },
        }
        return payload

    @server.resource(
        "resource://kanban/status",
        name="kanban_status",
        title="Kanban MCP Status",
        description="Provides the current runtime status for the Kanban MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    async def status_resource(context: Context) -> str:
        """Return a JSON string summarizing basic runtime state."""

        payload = await status_snapshot()
        payload["request_id"] = getattr(context, "request_id", None)
        return json.dumps(payload)

    handles = register_tools(server, orchestrator=orchestrator)

    setattr(server, "orchestrator", orchestrator)
    setattr(server, "agent_metadata", agent_metadata)
    setattr(server, "reconcile_actions", reconcile_actions)
    setattr(server, "tool_handles", handles)
    setattr(server, "status_snapshot", status_snapshot)
    return server


def main() -> None:
    """Entry point for running the Kanban MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching Kanban MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "agent_available": getattr(server, "agent_metadata", {}).get("available"),
            "jira_configured": settings.jira_configured,
            "reconciled": len(getattr(server, "reconcile_actions", [])),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
