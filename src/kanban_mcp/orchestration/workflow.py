"""Ticket workflow: legal transitions and the field changes each one makes."""

from __future__ import annotations

from enum import Enum
from typing import Callable
from uuid import uuid4

from ..errors import WorkflowError
from ..prompts import Phase
from ..storage.models import Ticket, TicketStatus, utc_now


class WorkflowState(str, Enum):
    BACKLOG = "backlog"
    RUNNING = "in-progress:running"
    STOPPED = "in-progress:stopped"
    REVIEW = "review"
    DONE = "done"


class Trigger(str, Enum):
    START = "start"
    STOP = "stop"
    EXIT = "exit"
    APPROVE = "approve"
    COMPLETE = "complete"
    REWORK = "rework"


ALLOWED_FROM: dict[Trigger, frozenset[WorkflowState]] = {
    Trigger.START: frozenset({WorkflowState.BACKLOG, WorkflowState.STOPPED}),
    Trigger.STOP: frozenset({WorkflowState.RUNNING}),
    Trigger.EXIT: frozenset({WorkflowState.RUNNING}),
    Trigger.APPROVE: frozenset({WorkflowState.REVIEW}),
    Trigger.COMPLETE: frozenset({WorkflowState.REVIEW}),
    Trigger.REWORK: frozenset({WorkflowState.REVIEW}),
}

# Only these two transitions are mirrored to the external tracker.
TRACKER_TARGETS: dict[WorkflowState, str] = {
    WorkflowState.RUNNING: "in-progress",
    WorkflowState.DONE: "done",
}


def state_of(ticket: Ticket) -> WorkflowState:
    if ticket.status is TicketStatus.IN_PROGRESS:
        return WorkflowState.STOPPED if ticket.stopped else WorkflowState.RUNNING
    return WorkflowState(ticket.status.value)


def ensure_allowed(ticket: Ticket, trigger: Trigger) -> WorkflowState:
    """Return the ticket's current state, or raise if ``trigger`` is illegal from it."""

    current = state_of(ticket)
    if current not in ALLOWED_FROM[trigger]:
        raise WorkflowError(
            f"Cannot {trigger.value} ticket '{ticket.id}' while it is {current.value}"
        )
    if trigger is Trigger.APPROVE and ticket.is_check:
        raise WorkflowError(
            f"Ticket '{ticket.id}' is a check ticket; use complete instead of approve"
        )
    if trigger is Trigger.COMPLETE and not ticket.is_check:
        raise WorkflowError(
            f"Ticket '{ticket.id}' requires approval with a commit phase; use approve"
        )
    return current


def tracker_target(previous: WorkflowState, current: WorkflowState) -> str | None:
    """Tracker status to mirror for a transition, or None when it is not mirrored."""

    if current is WorkflowState.RUNNING and previous is not WorkflowState.BACKLOG:
        return None
    if current is previous:
        return None
    return TRACKER_TARGETS.get(current)


def new_session_id() -> str:
    return str(uuid4())


def assign_session(ticket: Ticket, factory: Callable[[], str] = new_session_id) -> bool:
    """Give the ticket a session token if it has none. Returns True when resuming."""

    if ticket.session_id:
        return True
    ticket.session_id = factory()
    return False


def mark_running(ticket: Ticket, phase: Phase) -> None:
    ticket.status = TicketStatus.IN_PROGRESS
    ticket.stopped = False
    ticket.approving = phase == "approve"
    if phase == "start":
        ticket.started_at = utc_now()


def mark_stopped(ticket: Ticket) -> None:
    ticket.status = TicketStatus.IN_PROGRESS
    ticket.stopped = True
    ticket.approving = False


def apply_rework(ticket: Ticket, request: str) -> None:
    ticket.rework_count += 1
    ticket.last_rework_request = request


def apply_exit(ticket: Ticket, phase: Phase, *, output_tail: str, exit_code: int | None) -> None:
    """Advance the ticket after its agent process exited, whatever the exit code."""

    ticket.status = TicketStatus.DONE if phase == "approve" else TicketStatus.REVIEW
    ticket.approving = False
    ticket.stopped = False
    ticket.completed_at = utc_now()
    ticket.claude_output = output_tail
    ticket.last_exit_code = exit_code


def mark_done(ticket: Ticket) -> None:
    ticket.status = TicketStatus.DONE
    ticket.approving = False
    ticket.stopped = False
    ticket.completed_at = utc_now()


__all__ = [
    "ALLOWED_FROM",
    "TRACKER_TARGETS",
    "Trigger",
    "WorkflowState",
    "apply_exit",
    "apply_rework",
    "assign_session",
    "ensure_allowed",
    "mark_done",
    "mark_running",
    "mark_stopped",
    "new_session_id",
    "state_of",
    "tracker_target",
]
