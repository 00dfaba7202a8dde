"""Exception hierarchy shared by the orchestration layers."""

from __future__ import annotations


class KanbanError(RuntimeError):
    """Base class for Kanban MCP errors."""


class TicketNotFoundError(KanbanError, LookupError):
    """Raised when a ticket id does not exist in the store."""

    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"Ticket '{ticket_id}' not found")
        self.ticket_id = ticket_id


class ProjectNotFoundError(KanbanError, LookupError):
    """Raised when a ticket references a project that is not registered."""

    def __init__(self, project_id: str | None) -> None:
        super().__init__(f"Project '{project_id}' not found")
        self.project_id = project_id


class ConfigurationError(KanbanError):
    """Raised when the environment cannot support the requested operation."""


class WorkflowError(KanbanError):
    """Raised when a trigger is not legal for the ticket's current state."""


class TaskAlreadyRunningError(KanbanError):
    """Raised when a ticket already has an active task run."""

    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"Ticket '{ticket_id}' already has a running task")
        self.ticket_id = ticket_id


class TaskCapacityError(KanbanError):
    """Raised when admission control refuses a new task run."""


class SpawnError(KanbanError):
    """Raised when the agent process could not be started."""


__all__ = [
    "ConfigurationError",
    "KanbanError",
    "ProjectNotFoundError",
    "SpawnError",
    "TaskAlreadyRunningError",
    "TaskCapacityError",
    "TicketNotFoundError",
    "WorkflowError",
]
