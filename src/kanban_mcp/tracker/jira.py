"""Minimal async Jira Cloud REST client."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import KanbanError

logger = logging.getLogger(__name__)

API_PREFIX = "/rest/api/3"
ASSIGNED_ISSUES_JQL = "assignee=currentUser() AND statusCategory!=Done ORDER BY updated DESC"
ISSUE_FIELDS = ["summary", "status", "issuetype", "priority", "project", "description"]


class JiraError(KanbanError):
    """Raised when the Jira API cannot be reached or rejects a request."""


class JiraNotConfiguredError(JiraError):
    """Raised when host or credentials are missing."""


def _first_text(document: Any) -> str:
    """Return the first text node of an Atlassian Document Format body."""

    if isinstance(document, str):
        return document
    if not isinstance(document, dict):
        return ""
    try:
        return document["content"][0]["content"][0]["text"] or ""
    except (KeyError, IndexError, TypeError):
        return ""


def summarize_issue(issue: dict[str, Any]) -> dict[str, Any]:
    fields = issue.get("fields") or {}
    project = fields.get("project") or {}
    return {
        "id": issue.get("id"),
        "key": issue.get("key"),
        "summary": fields.get("summary"),
        "status": (fields.get("status") or {}).get("name"),
        "type": (fields.get("issuetype") or {}).get("name"),
        "priority": (fields.get("priority") or {}).get("name"),
        "project": project.get("name"),
        "projectKey": project.get("key"),
        "description": _first_text(fields.get("description")),
    }


class JiraClient:
    """Talks to ``https://<host>/rest/api/3`` with basic auth (email + API token)."""

    def __init__(
        self,
        *,
        host: str,
        email: str,
        api_token: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not (host and email and api_token):
            raise JiraNotConfiguredError("Jira host, email and API token must all be configured")
        self._host = host
        self._client = httpx.AsyncClient(
            base_url=f"https://{host}",
            auth=httpx.BasicAuth(email, api_token),
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            timeout=timeout_seconds,
            transport=transport,
        )

    @property
    def host(self) -> str:
        return self._host

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "JiraClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(method, f"{API_PREFIX}{path}", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body_preview = (exc.response.text or "").strip().replace("\n", " ")[:200]
            raise JiraError(
                f"Jira API error {exc.response.status_code} for {method} {path}: {body_preview}"
            ) from exc
        except httpx.HTTPError as exc:
            raise JiraError(f"Jira request failed for {method} {path}: {exc}") from exc

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise JiraError(f"Jira returned invalid JSON for {method} {path}") from exc

    async def fetch_issue(self, issue_key: str) -> dict[str, Any]:
        return await self._request("GET", f"/issue/{issue_key}")

    async def list_transitions(self, issue_key: str) -> list[dict[str, Any]]:
        payload = await self._request("GET", f"/issue/{issue_key}/transitions")
        return list((payload or {}).get("transitions") or [])

    async def execute_transition(self, issue_key: str, transition_id: str) -> None:
        await self._request(
            "POST",
            f"/issue/{issue_key}/transitions",
            payload={"transition": {"id": transition_id}},
        )

    async def myself(self) -> dict[str, Any]:
        return await self._request("GET", "/myself")

    async def test_connection(self) -> dict[str, Any]:
        try:
            me = await self.myself()
        except JiraError as exc:
            logger.warning("Jira connection test failed", extra={"error": str(exc)})
            return {"connected": False, "error": str(exc)}
        return {
            "connected": True,
            "user": (me or {}).get("displayName"),
            "email": (me or {}).get("emailAddress"),
        }

    async def search_assigned_issues(self, *, max_results: int = 50) -> list[dict[str, Any]]:
        payload = await self._request(
            "POST",
            "/search/jql",
            payload={
                "jql": ASSIGNED_ISSUES_JQL,
                "maxResults": max_results,
                "fields": ISSUE_FIELDS,
            },
        )
        return [summarize_issue(issue) for issue in (payload or {}).get("issues") or []]


__all__ = [
    "API_PREFIX",
    "ASSIGNED_ISSUES_JQL",
    "JiraClient",
    "JiraError",
    "JiraNotConfiguredError",
    "summarize_issue",
]
