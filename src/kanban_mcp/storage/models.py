"""Data models for persistent tracking."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TicketType(str, Enum):
    FEATURE = "feature"
    BUG = "bug"
    IMPROVEMENT = "improvement"
    CHECK = "check"


class TicketPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TicketStatus(str, Enum):
    BACKLOG = "backlog"
    IN_PROGRESS = "in-progress"
    REVIEW = "review"
    DONE = "done"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Ticket(_CamelModel):
    """A unit of work that moves through backlog, in-progress, review and done."""

    id: str
    project_id: str | None = None
    type: TicketType = TicketType.FEATURE
    title: str = ""
    description: str = ""
    success_criteria: str = ""
    priority: TicketPriority = TicketPriority.MEDIUM
    status: TicketStatus = TicketStatus.BACKLOG
    stopped: bool = False
    approving: bool = False
    session_id: str | None = Field(
        default=None,
        description="Agent session token; assigned on first launch and never regenerated.",
    )
    rework_count: int = 0
    last_rework_request: str = ""
    jira_key: str | None = None
    jira_project: str | None = None
    claude_output: str = Field(
        default="",
        description="Tail of the most recent run's combined output.",
    )
    last_exit_code: int | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value: Any):
        return TicketType.FEATURE if value in (None, "") else value

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, value: Any):
        return TicketPriority.MEDIUM if value in (None, "") else value

    @property
    def is_check(self) -> bool:
        return self.type is TicketType.CHECK

    def touch(self) -> None:
        self.updated_at = utc_now()

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TicketDocument(_CamelModel):
    """On-disk document: the ordered ticket list plus the id counter."""

    tickets: list[Ticket] = Field(default_factory=list)
    next_id: int = 1

    def find(self, ticket_id: str) -> Ticket | None:
        for ticket in self.tickets:
            if ticket.id == ticket_id:
                return ticket
        return None

    def allocate_id(self) -> str:
        ticket_id = str(self.next_id).zfill(3)
        self.next_id += 1
        return ticket_id


class Project(_CamelModel):
    """Externally managed project record; only its working directory matters here."""

    id: str
    name: str = ""
    path: str
    description: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.id


class ProjectDocument(_CamelModel):
    projects: list[Project] = Field(default_factory=list)


__all__ = [
    "Project",
    "ProjectDocument",
    "Ticket",
    "TicketDocument",
    "TicketPriority",
    "TicketStatus",
    "TicketType",
    "utc_now",
]
