"""Store abstraction for workflow definitions and execution records."""

from __future__ import annotations

from typing import Any, Protocol

from ..contracts import Workflow
from .models import WorkflowExecution


class ExecutionStore(Protocol):
    """Protocol for execution persistence backends."""

    async def save_workflow(self, workflow: Workflow) -> None:
        """Insert or replace a workflow definition."""

    async def get_workflow(
        self, workflow_id: str, user_id: str | None = None
    ) -> Workflow | None:
        """Retrieve a workflow definition, optionally scoped to its owner."""

    async def create_execution(self, execution: WorkflowExecution) -> None:
        """Insert a new execution record."""

    async def reserve_execution(
        self, execution: WorkflowExecution, limit: int
    ) -> tuple[bool, int]:
        """Insert ``execution`` only if fewer than ``limit`` runs are running.

        Count and insert happen atomically. Returns ``(inserted, running_count)``
        where the count is taken before the insert.
        """

    async def count_running(self, workflow_id: str) -> int:
        """Number of executions of ``workflow_id`` in ``running`` status."""

    async def update_execution(self, execution_id: str, fields: dict[str, Any]) -> None:
        """Field-level update of an execution record."""

    async def get_execution(
        self, execution_id: str, user_id: str | None = None
    ) -> WorkflowExecution | None:
        """Retrieve an execution by id, optionally scoped to its owner."""

    async def list_executions(
        self, workflow_id: str, user_id: str | None = None, limit: int = 10
    ) -> list[WorkflowExecution]:
        """Most recent executions of a workflow, newest first."""
