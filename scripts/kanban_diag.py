"""Kanban MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json

from pydantic import ValidationError

from kanban_mcp.config import KanbanSettings
from kanban_mcp.storage import LogSink, Ticket, TicketStore
from kanban_mcp.tracker import JiraClient, JiraNotConfiguredError


def load_tickets(settings: KanbanSettings) -> list[Ticket]:
    store = TicketStore(settings.tickets_file)
    try:
        return list(store.load().tickets)
    except (OSError, ValueError, ValidationError) as exc:
        print(f"Ticket store unreadable: {exc}")
        raise SystemExit(1)


def cmd_tickets(args: argparse.Namespace) -> None:
    settings = KanbanSettings()
    tickets = load_tickets(settings)
    if args.status:
        tickets = [ticket for ticket in tickets if ticket.status.value == args.status]
    if args.json:
        print(json.dumps([ticket.to_payload() for ticket in tickets], indent=2))
    else:
        for ticket in tickets:
            flag = " (stopped)" if ticket.stopped else ""
            print(f"{ticket.id} [{ticket.status.value}{flag}] {ticket.title} -> {ticket.session_id}")


def cmd_running_log(args: argparse.Namespace) -> None:
    settings = KanbanSettings()
    text = LogSink(settings.logs_dir).read(args.ticket_id)
    if text is None:
        print(f"No log for ticket {args.ticket_id}")
        raise SystemExit(1)
    if args.lines is not None and args.lines > 0:
        text = "\n".join(text.splitlines()[-args.lines :])
    print(text)


def cmd_metrics(args: argparse.Namespace) -> None:
    settings = KanbanSettings()
    tickets = load_tickets(settings)

    status_counts: dict[str, int] = {}
    type_counts: dict[str, int] = {}
    for ticket in tickets:
        status_counts[ticket.status.value] = status_counts.get(ticket.status.value, 0) + 1
        type_counts[ticket.type.value] = type_counts.get(ticket.type.value, 0) + 1

    failed_exits = [
        {"ticket_id": ticket.id, "exit_code": ticket.last_exit_code}
        for ticket in tickets
        if ticket.last_exit_code not in (None, 0)
    ]

    metrics = {
        "tickets_total": len(tickets),
        "status_counts": status_counts,
        "type_counts": type_counts,
        "stopped": sum(1 for ticket in tickets if ticket.stopped),
        "rework_total": sum(ticket.rework_count for ticket in tickets),
        "sessions_total": sum(1 for ticket in tickets if ticket.session_id),
        "jira_linked": sum(1 for ticket in tickets if ticket.jira_key),
        "nonzero_exits": failed_exits,
    }

    print(json.dumps(metrics, indent=2))


async def _check_jira(settings: KanbanSettings) -> dict[str, object]:
    async with JiraClient(
        host=settings.jira_host,
        email=settings.jira_email,
        api_token=settings.jira_api_token.get_secret_value(),
        timeout_seconds=settings.jira_timeout_seconds,
    ) as client:
        return await client.test_connection()


def cmd_jira(args: argparse.Namespace) -> None:
    settings = KanbanSettings()
    try:
        result = asyncio.run(_check_jira(settings))
    except JiraNotConfiguredError as exc:
        print(f"Jira unavailable: {exc}")
        raise SystemExit(1)
    print(json.dumps(result, indent=2))
    if not result.get("connected"):
        raise SystemExit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Kanban MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_tickets = sub.add_parser("tickets", help="List tickets from the store")
    p_tickets.add_argument("--json", action="store_true", help="Output JSON")
    p_tickets.add_argument("--status", help="Only show tickets with this status")
    p_tickets.set_defaults(func=cmd_tickets)

    p_log = sub.add_parser("running-log", help="Print a ticket's run log")
    p_log.add_argument("ticket_id")
    p_log.add_argument(
        "--lines",
        type=int,
        default=None,
        help="If provided, show only the last N lines",
    )
    p_log.set_defaults(func=cmd_running_log)

    p_metrics = sub.add_parser("metrics", help="Show ticket counts by status and type")
    p_metrics.set_defaults(func=cmd_metrics)

    p_jira = sub.add_parser("jira", help="Test the Jira connection")
    p_jira.set_defaults(func=cmd_jira)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
