"""In-memory implementation of the execution store."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict

from ..contracts import Workflow
from .models import ExecutionStatus, WorkflowExecution, check_fields
from .repository import ExecutionStore


class InMemoryExecutionStore(ExecutionStore):
    """Store workflows and executions in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Reads return copies so callers never
    observe later in-place updates.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._executions: Dict[str, WorkflowExecution] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def get_workflow(
        self, workflow_id: str, user_id: str | None = None
    ) -> Workflow | None:
        wf = self._workflows.get(workflow_id)
        if wf is None or (user_id is not None and wf.user_id != user_id):
            return None
        return wf.model_copy(deep=True)

    async def create_execution(self, execution: WorkflowExecution) -> None:
        async with self._lock:
            self._insert(execution)

    async def reserve_execution(
        self, execution: WorkflowExecution, limit: int
    ) -> tuple[bool, int]:
        async with self._lock:
            current = self._count_running(execution.workflow_id)
            if current >= limit:
                return False, current
            self._insert(execution)
            return True, current

    async def count_running(self, workflow_id: str) -> int:
        return self._count_running(workflow_id)

    async def update_execution(self, execution_id: str, fields: dict[str, Any]) -> None:
        check_fields(fields)
        execution = self._executions.get(execution_id)
        if execution is None:
            raise KeyError(execution_id)
        for name, value in fields.items():
            setattr(execution, name, copy.deepcopy(value))

    async def get_execution(
        self, execution_id: str, user_id: str | None = None
    ) -> WorkflowExecution | None:
        execution = self._executions.get(execution_id)
        if execution is None or (user_id is not None and execution.user_id != user_id):
            return None
        return execution.model_copy(deep=True)

    async def list_executions(
        self, workflow_id: str, user_id: str | None = None, limit: int = 10
    ) -> list[WorkflowExecution]:
        matching = [
            (seq, e)
            for seq, e in enumerate(self._executions.values())
            if e.workflow_id == workflow_id and (user_id is None or e.user_id == user_id)
        ]
        matching.sort(key=lambda item: (item[1].started_at, item[0]), reverse=True)
        return [e.model_copy(deep=True) for _, e in matching[:limit]]

    # ------------------------------------------------------------------
    def _insert(self, execution: WorkflowExecution) -> None:
        if execution.id in self._executions:
            raise ValueError(f"Execution already exists: {execution.id}")
        self._executions[execution.id] = execution.model_copy(deep=True)

    def _count_running(self, workflow_id: str) -> int:
        return sum(
            1
            for e in self._executions.values()
            if e.workflow_id == workflow_id and e.status == ExecutionStatus.RUNNING
        )
