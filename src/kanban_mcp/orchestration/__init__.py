"""Task orchestration: workflow, registry, launcher and the service facade."""

from .changes import ChangeInspector, WorkingTreeChanges
from .launcher import LaunchRequest, OutputTail, ProcessLauncher
from .registry import TaskRegistry, TaskRun
from .service import TaskOrchestrator
from .workflow import Trigger, WorkflowState

__all__ = [
    "ChangeInspector",
    "LaunchRequest",
    "OutputTail",
    "ProcessLauncher",
    "TaskOrchestrator",
    "TaskRegistry",
    "TaskRun",
    "Trigger",
    "WorkflowState",
    "WorkingTreeChanges",
]
