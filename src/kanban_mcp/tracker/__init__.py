"""External issue tracker integration."""

from .jira import JiraClient, JiraError, JiraNotConfiguredError
from .sync import STATUS_ALIASES, TrackerSync, TransitionOutcome, match_transition

__all__ = [
    "JiraClient",
    "JiraError",
    "JiraNotConfiguredError",
    "STATUS_ALIASES",
    "TrackerSync",
    "TransitionOutcome",
    "match_transition",
]
