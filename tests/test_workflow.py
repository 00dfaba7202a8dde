from __future__ import annotations

import pytest

from kanban_mcp.errors import WorkflowError
from kanban_mcp.orchestration.workflow import (
    Trigger,
    WorkflowState,
    apply_exit,
    apply_rework,
    assign_session,
    ensure_allowed,
    mark_done,
    mark_running,
    mark_stopped,
    state_of,
    tracker_target,
)
from kanban_mcp.storage import Ticket, TicketStatus, TicketType


def _ticket(**fields) -> Ticket:
    return Ticket(id="001", title="Example", **fields)


def test_state_of_splits_in_progress_by_stopped_flag():
    assert state_of(_ticket()) is WorkflowState.BACKLOG
    assert state_of(_ticket(status=TicketStatus.IN_PROGRESS)) is WorkflowState.RUNNING
    assert (
        state_of(_ticket(status=TicketStatus.IN_PROGRESS, stopped=True))
        is WorkflowState.STOPPED
    )
    assert state_of(_ticket(status=TicketStatus.REVIEW)) is WorkflowState.REVIEW
    assert state_of(_ticket(status=TicketStatus.DONE)) is WorkflowState.DONE


@pytest.mark.parametrize(
    ("fields", "trigger"),
    [
        ({}, Trigger.START),
        ({"status": TicketStatus.IN_PROGRESS, "stopped": True}, Trigger.START),
        ({"status": TicketStatus.IN_PROGRESS}, Trigger.STOP),
        ({"status": TicketStatus.IN_PROGRESS}, Trigger.EXIT),
        ({"status": TicketStatus.REVIEW}, Trigger.APPROVE),
        ({"status": TicketStatus.REVIEW}, Trigger.REWORK),
        ({"status": TicketStatus.REVIEW, "type": TicketType.CHECK}, Trigger.COMPLETE),
    ],
)
def test_legal_triggers(fields, trigger):
    ticket = _ticket(**fields)
    assert ensure_allowed(ticket, trigger) is state_of(ticket)


@pytest.mark.parametrize(
    ("fields", "trigger"),
    [
        ({"status": TicketStatus.IN_PROGRESS}, Trigger.START),
        ({"status": TicketStatus.REVIEW}, Trigger.START),
        ({"status": TicketStatus.DONE}, Trigger.START),
        ({}, Trigger.STOP),
        ({}, Trigger.APPROVE),
        ({"status": TicketStatus.DONE}, Trigger.REWORK),
        ({"status": TicketStatus.IN_PROGRESS, "stopped": True}, Trigger.REWORK),
        ({"status": TicketStatus.REVIEW, "type": TicketType.CHECK}, Trigger.APPROVE),
        ({"status": TicketStatus.REVIEW}, Trigger.COMPLETE),
    ],
)
def test_illegal_triggers_raise(fields, trigger):
    with pytest.raises(WorkflowError):
        ensure_allowed(_ticket(**fields), trigger)


def test_assign_session_is_stable():
    ticket = _ticket()
    assert assign_session(ticket, lambda: "sess-1") is False
    assert ticket.session_id == "sess-1"
    assert assign_session(ticket, lambda: "sess-2") is True
    assert ticket.session_id == "sess-1"


def test_mark_running_sets_phase_flags():
    ticket = _ticket(stopped=True)
    mark_running(ticket, "start")
    assert ticket.status is TicketStatus.IN_PROGRESS
    assert ticket.stopped is False
    assert ticket.approving is False
    assert ticket.started_at is not None

    review = _ticket(status=TicketStatus.REVIEW)
    mark_running(review, "approve")
    assert review.approving is True
    assert review.started_at is None


def test_apply_exit_routes_by_phase():
    for phase in ("start", "rework"):
        ticket = _ticket(status=TicketStatus.IN_PROGRESS)
        apply_exit(ticket, phase, output_tail="tail", exit_code=1)
        assert ticket.status is TicketStatus.REVIEW
        assert ticket.claude_output == "tail"
        assert ticket.last_exit_code == 1
        assert ticket.completed_at is not None

    approving = _ticket(status=TicketStatus.IN_PROGRESS, approving=True)
    apply_exit(approving, "approve", output_tail="", exit_code=0)
    assert approving.status is TicketStatus.DONE
    assert approving.approving is False


def test_stop_rework_and_done_mutators():
    ticket = _ticket(status=TicketStatus.IN_PROGRESS, approving=True)
    mark_stopped(ticket)
    assert (ticket.status, ticket.stopped, ticket.approving) == (
        TicketStatus.IN_PROGRESS,
        True,
        False,
    )

    apply_rework(ticket, "first")
    apply_rework(ticket, "second")
    assert ticket.rework_count == 2
    assert ticket.last_rework_request == "second"

    mark_done(ticket)
    assert ticket.status is TicketStatus.DONE
    assert ticket.stopped is False


def test_tracker_target_mirrors_only_first_start_and_done():
    assert tracker_target(WorkflowState.BACKLOG, WorkflowState.RUNNING) == "in-progress"
    assert tracker_target(WorkflowState.STOPPED, WorkflowState.RUNNING) is None
    assert tracker_target(WorkflowState.REVIEW, WorkflowState.RUNNING) is None
    assert tracker_target(WorkflowState.RUNNING, WorkflowState.REVIEW) is None
    assert tracker_target(WorkflowState.RUNNING, WorkflowState.DONE) == "done"
    assert tracker_target(WorkflowState.REVIEW, WorkflowState.DONE) == "done"
    assert tracker_target(WorkflowState.DONE, WorkflowState.DONE) is None
