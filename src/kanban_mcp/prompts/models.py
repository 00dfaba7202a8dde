"""Prompt template models for the agent phases."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from ..storage.models import TicketType

Phase = Literal["start", "approve", "rework"]


class PromptTemplate(BaseModel):
    """Instruction block rendered into an agent prompt for one phase."""

    id: str = Field(..., description="Unique identifier for the template.")
    phase: Phase = Field(..., description="Workflow phase the template applies to.")
    ticket_type: TicketType | None = Field(
        default=None,
        description="Ticket type selecting this template in the start phase.",
    )
    heading: str = Field(..., description="Section heading shown above the instructions.")
    preamble: str = Field(default="", description="Free text placed before the numbered steps.")
    instructions: list[str] = Field(
        default_factory=list,
        description="Ordered list of steps the agent must follow.",
    )
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Prompt template id must not be empty")
        return normalized

    @field_validator("instructions", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        raise TypeError("Instructions must be a sequence of strings")

    @model_validator(mode="after")
    def _start_requires_type(self) -> "PromptTemplate":
        if self.phase == "start" and self.ticket_type is None:
            raise ValueError(f"Start-phase template '{self.id}' must declare a ticket_type")
        return self

    def render_steps(self) -> str:
        steps = enumerate(self.instructions, start=1)
        return "\n".join(f"{index}. {step}" for index, step in steps)


__all__ = ["Phase", "PromptTemplate"]
