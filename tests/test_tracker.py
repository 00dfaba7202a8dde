from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from kanban_mcp.tracker import JiraClient, JiraError, JiraNotConfiguredError, TrackerSync
from kanban_mcp.tracker.importer import (
    map_priority,
    map_type,
    select_new_issues,
    ticket_fields_from_issue,
)
from kanban_mcp.tracker.jira import summarize_issue
from kanban_mcp.tracker.sync import match_transition

TRANSITIONS = [
    {"id": "11", "name": "Start Progress", "to": {"name": "In Progress"}},
    {"id": "21", "name": "Ready for QA", "to": {"name": "In Review"}},
    {"id": "31", "name": "Close", "to": {"name": "Done"}},
]


def test_match_transition_by_name_or_destination():
    assert match_transition(TRANSITIONS, "in-progress")["id"] == "11"
    assert match_transition(TRANSITIONS, "review")["id"] == "21"
    assert match_transition(TRANSITIONS, "done")["id"] == "31"


def test_match_transition_localized_and_missing():
    localized = [{"id": "5", "name": "작업 시작", "to": {"name": "진행 중"}}]
    assert match_transition(localized, "in-progress")["id"] == "5"
    assert match_transition(localized, "done") is None
    assert match_transition([], "done") is None
    assert match_transition([{"id": "9", "name": "Ship it"}], "deploy", aliases=["SHIP"])


class FakeClient:
    def __init__(self, transitions=None, error: Exception | None = None) -> None:
        self.transitions = TRANSITIONS if transitions is None else transitions
        self.error = error
        self.executed: list[tuple[str, str]] = []

    async def list_transitions(self, issue_key: str) -> list[dict[str, Any]]:
        if self.error is not None:
            raise self.error
        return self.transitions

    async def execute_transition(self, issue_key: str, transition_id: str) -> None:
        self.executed.append((issue_key, transition_id))


def test_sync_executes_matching_transition():
    client = FakeClient()
    outcome = asyncio.run(TrackerSync(client).sync("KAN-1", "done"))
    assert client.executed == [("KAN-1", "31")]
    assert outcome.transition_name == "Close"
    assert outcome.to_status == "Done"


def test_sync_is_noop_without_client_key_or_match():
    assert asyncio.run(TrackerSync(None).sync("KAN-1", "done")) is None
    client = FakeClient(transitions=[{"id": "1", "name": "Reopen", "to": {"name": "Open"}}])
    sync = TrackerSync(client)
    assert asyncio.run(sync.sync(None, "done")) is None
    assert asyncio.run(sync.sync("KAN-1", "done")) is None
    assert client.executed == []
    assert TrackerSync(None).enabled is False


def test_sync_swallows_client_errors(caplog):
    client = FakeClient(error=JiraError("401 Unauthorized"))
    assert asyncio.run(TrackerSync(client).sync("KAN-1", "done")) is None
    assert "Tracker status sync failed" in caplog.text


def test_schedule_and_drain():
    client = FakeClient()

    async def scenario():
        sync = TrackerSync(client)
        assert sync.schedule(None, "done") is None
        task = sync.schedule("KAN-2", "in-progress")
        await sync.drain()
        return task

    task = asyncio.run(scenario())
    assert task.done()
    assert client.executed == [("KAN-2", "11")]


def _client(handler) -> JiraClient:
    return JiraClient(
        host="acme.atlassian.net",
        email="dev@acme.io",
        api_token="secret",
        transport=httpx.MockTransport(handler),
    )


def test_jira_client_transitions_roundtrip():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "GET":
            return httpx.Response(200, json={"transitions": TRANSITIONS})
        return httpx.Response(204)

    async def scenario():
        async with _client(handler) as client:
            transitions = await client.list_transitions("KAN-1")
            await client.execute_transition("KAN-1", "31")
            return transitions

    transitions = asyncio.run(scenario())
    assert [item["id"] for item in transitions] == ["11", "21", "31"]
    get, post = requests
    assert str(get.url) == "https://acme.atlassian.net/rest/api/3/issue/KAN-1/transitions"
    assert get.headers["Authorization"].startswith("Basic ")
    assert json.loads(post.content) == {"transition": {"id": "31"}}


def test_jira_client_search_summarizes_issues():
    issue = {
        "id": "10001",
        "key": "KAN-4",
        "fields": {
            "summary": "Login fails",
            "status": {"name": "To Do"},
            "issuetype": {"name": "Bug"},
            "priority": {"name": "High"},
            "project": {"name": "Kanban", "key": "KAN"},
            "description": {
                "type": "doc",
                "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Steps"}]}],
            },
        },
    }

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert request.url.path == "/rest/api/3/search/jql"
        assert "currentUser()" in body["jql"]
        return httpx.Response(200, json={"issues": [issue]})

    async def scenario():
        async with _client(handler) as client:
            return await client.search_assigned_issues()

    (summary,) = asyncio.run(scenario())
    assert summary == {
        "id": "10001",
        "key": "KAN-4",
        "summary": "Login fails",
        "status": "To Do",
        "type": "Bug",
        "priority": "High",
        "project": "Kanban",
        "projectKey": "KAN",
        "description": "Steps",
    }


def test_jira_client_errors_and_connection_test():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="Unauthorized")

    async def scenario():
        async with _client(handler) as client:
            with pytest.raises(JiraError) as excinfo:
                await client.fetch_issue("KAN-1")
            return str(excinfo.value), await client.test_connection()

    message, status = asyncio.run(scenario())
    assert "401" in message
    assert status["connected"] is False


def test_jira_client_requires_credentials():
    with pytest.raises(JiraNotConfiguredError):
        JiraClient(host="acme.atlassian.net", email="", api_token="x")


def test_summarize_issue_tolerates_missing_fields():
    summary = summarize_issue({"key": "KAN-9", "fields": {"description": "plain"}})
    assert summary["key"] == "KAN-9"
    assert summary["description"] == "plain"
    assert summary["status"] is None


def test_importer_mappings():
    assert map_type("Bug").value == "bug"
    assert map_type("버그").value == "bug"
    assert map_type("Story").value == "feature"
    assert map_type("Improvement").value == "improvement"
    assert map_type(None).value == "feature"
    assert map_priority("Highest").value == "critical"
    assert map_priority("Lowest").value == "low"
    assert map_priority("Blocker").value == "medium"

    fields = ticket_fields_from_issue(
        {"key": "KAN-3", "summary": "Slow search", "type": "Task", "project": "Kanban"}
    )
    assert fields["title"] == "[KAN-3] Slow search"
    assert fields["jira_key"] == "KAN-3"
    assert fields["jira_project"] == "Kanban"


def test_select_new_issues_dedupes():
    issues = [{"key": "A-1"}, {"key": "A-2"}, {"key": "A-1"}, {"summary": "no key"}]
    assert select_new_issues(issues, {"A-2"}) == [{"key": "A-1"}]
