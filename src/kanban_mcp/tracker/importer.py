"""Convert tracker issues into backlog tickets."""

from __future__ import annotations

from typing import Any, Iterable

from ..storage.models import TicketPriority, TicketType

TYPE_MAP: dict[str, TicketType] = {
    "bug": TicketType.BUG,
    "버그": TicketType.BUG,
    "task": TicketType.FEATURE,
    "작업": TicketType.FEATURE,
    "story": TicketType.FEATURE,
    "스토리": TicketType.FEATURE,
    "epic": TicketType.FEATURE,
    "에픽": TicketType.FEATURE,
    "improvement": TicketType.IMPROVEMENT,
    "개선": TicketType.IMPROVEMENT,
}

PRIORITY_MAP: dict[str, TicketPriority] = {
    "highest": TicketPriority.CRITICAL,
    "high": TicketPriority.HIGH,
    "medium": TicketPriority.MEDIUM,
    "low": TicketPriority.LOW,
    "lowest": TicketPriority.LOW,
}


def map_type(issue_type: str | None) -> TicketType:
    return TYPE_MAP.get((issue_type or "").strip().lower(), TicketType.FEATURE)


def map_priority(priority: str | None) -> TicketPriority:
    return PRIORITY_MAP.get((priority or "").strip().lower(), TicketPriority.MEDIUM)


def ticket_fields_from_issue(issue: dict[str, Any]) -> dict[str, Any]:
    key = issue["key"]
    return {
        "jira_key": key,
        "project_id": None,
        "type": map_type(issue.get("type")),
        "title": f"[{key}] {issue.get('summary') or ''}".strip(),
        "description": issue.get("description") or "",
        "priority": map_priority(issue.get("priority")),
        "jira_project": issue.get("project"),
    }


def select_new_issues(
    issues: Iterable[dict[str, Any]], existing_keys: set[str]
) -> list[dict[str, Any]]:
    """Drop issues already imported (by key) and duplicates within the batch."""

    seen = set(existing_keys)
    fresh: list[dict[str, Any]] = []
    for issue in issues:
        key = issue.get("key")
        if not key or key in seen:
            continue
        seen.add(key)
        fresh.append(issue)
    return fresh


__all__ = [
    "PRIORITY_MAP",
    "TYPE_MAP",
    "map_priority",
    "map_type",
    "select_new_issues",
    "ticket_fields_from_issue",
]
