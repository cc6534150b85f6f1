"""Read-only projections of execution records for polling callers."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from .constants import RECENT_EXECUTIONS_LIMIT
from .contracts import CamelModel
from .persistence import (
    ExecutionStatus,
    ExecutionStore,
    ResourceTotals,
    StepResult,
    WorkflowExecution,
)


class ExecutionView(CamelModel):
    """Full caller-facing projection of one execution."""

    id: str
    workflow_id: str
    status: ExecutionStatus
    trigger_data: Dict[str, Any]
    current_step: int
    completed_steps: int
    total_steps: int
    step_results: List[StepResult]
    final_result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    execution_logs: List[str]
    resources_consumed: ResourceTotals
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration: Optional[int] = None

    @classmethod
    def from_execution(cls, execution: WorkflowExecution) -> "ExecutionView":
        return cls.model_validate(execution.model_dump(exclude={"user_id"}))


class ExecutionSummary(CamelModel):
    """Summary row without step-level detail."""

    id: str
    status: ExecutionStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration: Optional[int] = None
    current_step: int
    completed_steps: int
    total_steps: int
    error_message: Optional[str] = None

    @classmethod
    def from_execution(cls, execution: WorkflowExecution) -> "ExecutionSummary":
        return cls(
            id=execution.id,
            status=execution.status,
            started_at=execution.started_at,
            completed_at=execution.completed_at,
            duration=execution.duration,
            current_step=execution.current_step,
            completed_steps=execution.completed_steps,
            total_steps=execution.total_steps,
            error_message=execution.error_message,
        )


class StatusQueryService:
    """Lookups of executions by id or by workflow. Never writes."""

    def __init__(self, store: ExecutionStore, recent_limit: int = RECENT_EXECUTIONS_LIMIT) -> None:
        self._store = store
        self._recent_limit = recent_limit

    async def get_execution(self, execution_id: str, user_id: str) -> ExecutionView | None:
        execution = await self._store.get_execution(execution_id, user_id)
        if execution is None:
            return None
        return ExecutionView.from_execution(execution)

    async def list_recent(
        self, workflow_id: str, user_id: str, limit: int | None = None
    ) -> list[ExecutionSummary]:
        limit = min(limit or self._recent_limit, self._recent_limit)
        executions = await self._store.list_executions(workflow_id, user_id, limit=limit)
        return [ExecutionSummary.from_execution(e) for e in executions]
