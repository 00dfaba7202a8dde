"""Tool registration for Kanban MCP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..orchestration import TaskOrchestrator


@dataclass(slots=True)
class ToolHandles:
    list_tickets: Any
    create_ticket: Any
    start_task: Any
    stop_task: Any
    task_log: Any
    approve_task: Any
    rework_task: Any
    running_tasks: Any
    task_changes: Any
    import_jira_issues: Any


def register_tools(server: FastMCP, *, orchestrator: TaskOrchestrator) -> ToolHandles:
    """Register the ticket control surface as MCP tools on the server."""

    async def _list_tickets(
        status: str | None = None,
        context: Context | None = None,
    ) -> list[dict[str, Any]]:
        """List tickets, optionally filtered by status."""

        tickets = await orchestrator.list_tickets()
        if status:
            tickets = [ticket for ticket in tickets if ticket.get("status") == status]
        _emit_log(context, "debug", "Listing tickets", extra={"count": len(tickets)})
        return tickets

    async def _create_ticket(
        title: str,
        project_id: str,
        *,
        ticket_type: str = "feature",
        description: str = "",
        success_criteria: str = "",
        priority: str = "medium",
        jira_key: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        ticket = await orchestrator.create_ticket(
            {
                "title": title,
                "project_id": project_id,
                "type": ticket_type,
                "description": description,
                "success_criteria": success_criteria,
                "priority": priority,
                "jira_key": jira_key,
            }
        )
        _emit_log(context, "info", "Created ticket", extra={"ticket_id": ticket["id"]})
        return ticket

    async def _start_task(
        ticket_id: str,
        project_id: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Start or resume the agent for a backlog or stopped ticket."""

        result = await orchestrator.start(ticket_id, project_id=project_id)
        _emit_log(
            context,
            "info",
            "Started task",
            extra={"ticket_id": ticket_id, "session_id": result.get("sessionId")},
        )
        return result

    async def _stop_task(ticket_id: str, context: Context | None = None) -> dict[str, Any]:
        result = await orchestrator.stop(ticket_id)
        _emit_log(context, "warning", "Stopped task", extra={"ticket_id": ticket_id})
        return result

    async def _task_log(ticket_id: str, context: Context | None = None) -> dict[str, Any]:
        return await orchestrator.task_log(ticket_id)

    async def _approve_task(ticket_id: str, context: Context | None = None) -> dict[str, Any]:
        """Approve a ticket in review; check tickets complete without a commit phase."""

        result = await orchestrator.approve(ticket_id)
        _emit_log(
            context,
            "info",
            "Approved ticket",
            extra={"ticket_id": ticket_id, "skipped_commit": result.get("skippedCommit")},
        )
        return result

    async def _rework_task(
        ticket_id: str,
        request: str,
        context: Context | None = None,
    ) -> dict[str, Any]:
        result = await orchestrator.rework(ticket_id, request)
        _emit_log(
            context,
            "info",
            "Rework requested",
            extra={"ticket_id": ticket_id, "rework_count": result.get("reworkCount")},
        )
        return result

    def _running_tasks(context: Context | None = None) -> list[dict[str, Any]]:
        return orchestrator.running()

    async def _task_changes(ticket_id: str, context: Context | None = None) -> dict[str, Any]:
        return await orchestrator.changes(ticket_id)

    async def _import_jira_issues(context: Context | None = None) -> dict[str, Any]:
        """Import the caller's open Jira issues as backlog tickets."""

        issues = await orchestrator.tracker_issues()
        result = await orchestrator.import_issues(issues)
        _emit_log(context, "info", "Imported Jira issues", extra={"imported": result["imported"]})
        return result

    tool_list = server.tool(
        name="list_tickets",
        description="List board tickets with status, session and rework details.",
    )(_list_tickets)

    tool_create = server.tool(
        name="create_ticket",
        description=(
            "Create a backlog ticket. ticket_type is one of feature, bug, improvement, check; "
            "priority is one of critical, high, medium, low."
        ),
    )(_create_ticket)

    tool_start = server.tool(
        name="start_task",
        description=(
            "Launch the Claude agent for a backlog or stopped ticket. The ticket keeps one "
            "agent session across every run."
        ),
        annotations={
            "safety": {
                "level": "caution",
                "notes": "The agent runs with the configured CLI flags in the project directory",
            }
        },
    )(_start_task)

    tool_stop = server.tool(
        name="stop_task",
        description="Terminate the running agent; the ticket stays in progress, marked stopped.",
    )(_stop_task)

    tool_log = server.tool(
        name="task_log",
        description="Fetch a ticket's run log with its running flag and elapsed seconds.",
    )(_task_log)

    tool_approve = server.tool(
        name="approve_task",
        description=(
            "Approve a ticket in review. Runs the commit/push phase, or completes the ticket "
            "directly for check tickets and clean working trees."
        ),
    )(_approve_task)

    tool_rework = server.tool(
        name="rework_task",
        description="Send a ticket in review back to the agent with rework instructions.",
    )(_rework_task)

    tool_running = server.tool(
        name="running_tasks",
        description="List tickets with an active agent process and their run time.",
    )(_running_tasks)

    tool_changes = server.tool(
        name="task_changes",
        description="Show uncommitted git changes in the ticket's project directory.",
    )(_task_changes)

    tool_import = server.tool(
        name="import_jira_issues",
        description="Import open Jira issues assigned to the configured user as backlog tickets.",
    )(_import_jira_issues)

    return ToolHandles(
        list_tickets=tool_list,
        create_ticket=tool_create,
        start_task=tool_start,
        stop_task=tool_stop,
        task_log=tool_log,
        approve_task=tool_approve,
        rework_task=tool_rework,
        running_tasks=tool_running,
        task_changes=tool_changes,
        import_jira_issues=tool_import,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
