"""Exception hierarchy for the autoflow engine."""

from __future__ import annotations


class AutoflowError(Exception):
    """Base class for all engine errors."""


# ----------------------------------------------------------------------
# Admission


class AdmissionError(AutoflowError):
    """Raised before an execution record exists; the caller may retry later."""


class WorkflowNotFound(AdmissionError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class WorkflowDisabled(AdmissionError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow is disabled: {workflow_id}")
        self.workflow_id = workflow_id


class WorkflowNotExecutable(AdmissionError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow has no steps: {workflow_id}")
        self.workflow_id = workflow_id


class ConcurrencyLimitReached(AdmissionError):
    """The workflow already has ``limit`` running executions."""

    def __init__(self, workflow_id: str, current: int, limit: int) -> None:
        super().__init__(
            f"Maximum concurrent executions reached for {workflow_id} "
            f"(current={current}, limit={limit})"
        )
        self.workflow_id = workflow_id
        self.current = current
        self.limit = limit


# ----------------------------------------------------------------------
# Step execution


class StepExecutionError(AutoflowError):
    """A single step failed.

    ``retryable`` tells the coordinator whether the retry policy applies.
    """

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class UnknownStepTypeError(StepExecutionError):
    def __init__(self, step_type: str) -> None:
        super().__init__(f"Unknown step type: {step_type}", retryable=False)
        self.step_type = step_type


class StepTimeoutError(StepExecutionError):
    def __init__(self, step_index: int, timeout: float) -> None:
        super().__init__(f"Step {step_index + 1} timed out after {timeout}s")
        self.timeout = timeout


class ActionExecutorError(StepExecutionError):
    """An action or agent executor raised while performing its side effect."""


# ----------------------------------------------------------------------
# Lifecycle / persistence


class ExecutionCancelled(AutoflowError):
    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution cancelled: {execution_id}")
        self.execution_id = execution_id


class ExecutionFinalizedError(AutoflowError):
    """Write attempted after the execution reached a terminal state."""


class StorePersistenceError(AutoflowError):
    """The execution store could not persist progress after retries."""
