"""Storage abstractions for Kanban MCP."""

from .logs import ERROR_TAG, LogSink, TicketLog
from .models import (
    Project,
    Ticket,
    TicketDocument,
    TicketPriority,
    TicketStatus,
    TicketType,
)
from .projects import ProjectStore
from .tickets import TicketStore

__all__ = [
    "ERROR_TAG",
    "LogSink",
    "Project",
    "ProjectStore",
    "Ticket",
    "TicketDocument",
    "TicketLog",
    "TicketPriority",
    "TicketStatus",
    "TicketStore",
    "TicketType",
]
