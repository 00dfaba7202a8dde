"""Claude CLI orchestration utilities."""

from .runner import (
    AgentExecutionResult,
    AgentInvocation,
    AgentNotFoundError,
    ClaudeRunner,
    session_arguments,
)

__all__ = [
    "AgentExecutionResult",
    "AgentInvocation",
    "AgentNotFoundError",
    "ClaudeRunner",
    "session_arguments",
]
