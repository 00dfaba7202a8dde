from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from kanban_mcp.errors import ProjectNotFoundError, TicketNotFoundError
from kanban_mcp.storage import (
    ERROR_TAG,
    LogSink,
    Project,
    ProjectStore,
    TicketStatus,
    TicketStore,
)
from kanban_mcp.storage.tickets import editable_fields


def test_load_creates_empty_document(tmp_path: Path):
    store = TicketStore(tmp_path / "data" / "tickets.json")
    document = store.load()
    assert document.tickets == []
    raw = json.loads(store.path.read_text(encoding="utf-8"))
    assert raw == {"tickets": [], "nextId": 1}


def test_create_allocates_padded_ids_and_persists_camel_case(tmp_path: Path):
    store = TicketStore(tmp_path / "tickets.json")

    async def scenario():
        first = await store.create({"title": "One", "projectId": "p1", "successCriteria": "ok"})
        second = await store.create({"title": "Two", "type": "bug", "priority": "high"})
        return first, second

    first, second = asyncio.run(scenario())
    assert (first.id, second.id) == ("001", "002")
    assert first.type.value == "feature"
    assert first.priority.value == "medium"
    assert first.status is TicketStatus.BACKLOG

    raw = json.loads((tmp_path / "tickets.json").read_text(encoding="utf-8"))
    assert raw["nextId"] == 3
    stored = raw["tickets"][0]
    assert stored["projectId"] == "p1"
    assert stored["successCriteria"] == "ok"
    assert stored["sessionId"] is None
    assert list(tmp_path.glob(".tickets-*")) == []


def test_create_ignores_workflow_fields(tmp_path: Path):
    store = TicketStore(tmp_path / "tickets.json")
    ticket = asyncio.run(
        store.create({"title": "x", "status": "done", "sessionId": "forged", "reworkCount": 9})
    )
    assert ticket.status is TicketStatus.BACKLOG
    assert ticket.session_id is None
    assert ticket.rework_count == 0


def test_editable_fields_normalizes_keys():
    assert editable_fields({"jiraKey": "KAN-1", "status": "done", "title": "t"}) == {
        "jira_key": "KAN-1",
        "title": "t",
    }


def test_update_patch_delete_and_missing(tmp_path: Path):
    store = TicketStore(tmp_path / "tickets.json")

    async def scenario():
        ticket = await store.create({"title": "Original"})
        before = ticket.updated_at

        def _mutate(current):
            current.rework_count = 4

        updated = await store.update(ticket.id, _mutate)
        patched = await store.patch(ticket.id, {"title": "Renamed", "priority": "low"})
        fetched = await store.get(ticket.id)
        with pytest.raises(TicketNotFoundError):
            await store.update("404", _mutate)
        await store.delete(ticket.id)
        with pytest.raises(TicketNotFoundError):
            await store.get(ticket.id)
        return before, updated, patched, fetched

    before, updated, patched, fetched = asyncio.run(scenario())
    assert updated.rework_count == 4
    assert updated.updated_at >= before
    assert patched.title == "Renamed"
    assert patched.rework_count == 4
    assert fetched.priority.value == "low"


def test_concurrent_updates_are_serialized(tmp_path: Path):
    store = TicketStore(tmp_path / "tickets.json")

    async def scenario():
        ticket = await store.create({"title": "Counter"})

        def _bump(current):
            current.rework_count += 1

        await asyncio.gather(*(store.update(ticket.id, _bump) for _ in range(20)))
        return await store.get(ticket.id)

    assert asyncio.run(scenario()).rework_count == 20


def test_create_many_allocates_sequential_ids_and_reset_empties(tmp_path: Path):
    store = TicketStore(tmp_path / "tickets.json")

    async def scenario():
        created = await store.create_many(
            [{"title": "A", "jiraKey": "KAN-1"}, {"title": "B", "jiraKey": "KAN-2"}]
        )
        listed = await store.list()
        await store.reset()
        return created, listed, await store.list()

    created, listed, remaining = asyncio.run(scenario())
    assert [ticket.id for ticket in created] == ["001", "002"]
    assert [ticket.jira_key for ticket in listed] == ["KAN-1", "KAN-2"]
    assert remaining == []


def test_project_store(tmp_path: Path):
    store = ProjectStore(tmp_path / "projects.json")
    assert store.list() == []
    store.add(Project(id="web", path=str(tmp_path)))
    with pytest.raises(ValueError):
        store.add(Project(id="web", path=str(tmp_path)))
    assert store.get("web").display_name == "web"
    with pytest.raises(ProjectNotFoundError):
        store.get("api")
    with pytest.raises(ProjectNotFoundError):
        store.get(None)


def test_ticket_log_markers_and_errors(tmp_path: Path):
    sink = LogSink(tmp_path / "logs")
    log = sink.open("001")
    log.marker("🚀", "Task started: Demo")
    log.write("hello\n")
    log.error("boom\n")
    assert log.close() is True
    assert log.close() is False
    log.write("ignored after close\n")

    text = sink.read("001")
    lines = text.splitlines()
    assert lines[0].startswith("[") and lines[0].endswith("] 🚀 Task started: Demo")
    assert lines[1] == "hello"
    assert lines[2] == f"{ERROR_TAG} boom"
    assert "ignored" not in text
    assert sink.path_for("001").name == "ticket-001.log"


def test_log_sink_append_read_delete_clear(tmp_path: Path):
    sink = LogSink(tmp_path / "logs")
    assert sink.read("001") is None
    assert sink.clear() == 0
    sink.append_marker("001", "⏹️", "Task stopped by request")
    sink.append_marker("002", "✅", "Check completed")
    assert "⏹️ Task stopped by request" in sink.read("001")
    assert sink.delete("001") is True
    assert sink.delete("001") is False
    assert sink.clear() == 1
    assert sink.read("002") is None
