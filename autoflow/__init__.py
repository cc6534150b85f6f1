"""Autoflow: asynchronous execution engine for user-defined automation workflows."""

from .actions import ActionRegistry, StepContext
from .admission import AdmissionController, AdmissionDecision
from .contracts import RetryPolicy, RunHandle, Step, Workflow
from .coordinator import ExecutionCoordinator
from .dispatch import WorkflowDispatcher
from .execute import StepExecutor
from .persistence import ExecutionStatus, WorkflowExecution, get_store
from .status import ExecutionSummary, ExecutionView, StatusQueryService

__version__ = "0.1.0"
__all__ = [
    "ActionRegistry",
    "AdmissionController",
    "AdmissionDecision",
    "ExecutionCoordinator",
    "ExecutionStatus",
    "ExecutionSummary",
    "ExecutionView",
    "RetryPolicy",
    "RunHandle",
    "StatusQueryService",
    "Step",
    "StepContext",
    "StepExecutor",
    "Workflow",
    "WorkflowDispatcher",
    "WorkflowExecution",
    "get_store",
]
