"""Per-workflow concurrency ceiling enforced before a run starts."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from pydantic import BaseModel

from .contracts import Workflow
from .persistence import ExecutionStore, WorkflowExecution

logger = logging.getLogger(__name__)


class AdmissionDecision(BaseModel):
    admitted: bool
    current: int
    limit: int


class AdmissionController:
    """Count running executions of a workflow against ``max_concurrent_runs``.

    ``check`` is a read-only look at the current count. ``admit`` performs the
    count and the insert of the new execution as one step: an in-process lock
    per workflow serializes local callers, and the store's
    ``reserve_execution`` makes the count-and-insert atomic across processes.
    """

    def __init__(self, store: ExecutionStore) -> None:
        self._store = store
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def check(self, workflow: Workflow) -> AdmissionDecision:
        current = await self._store.count_running(workflow.id)
        limit = workflow.max_concurrent_runs
        return AdmissionDecision(admitted=current < limit, current=current, limit=limit)

    async def admit(
        self, workflow: Workflow, execution: WorkflowExecution
    ) -> AdmissionDecision:
        limit = workflow.max_concurrent_runs
        async with self._workflow_lock(workflow.id):
            inserted, current = await self._store.reserve_execution(execution, limit)
        if not inserted:
            logger.warning(
                f"Rejected run of workflow {workflow.id}: {current}/{limit} already running"
            )
        return AdmissionDecision(admitted=inserted, current=current, limit=limit)

    @asynccontextmanager
    async def _workflow_lock(self, workflow_id: str) -> AsyncIterator[None]:
        """Hold the per-workflow lock; drop it once no caller references it."""
        lock = self._locks.setdefault(workflow_id, asyncio.Lock())
        self._lock_users[workflow_id] = self._lock_users.get(workflow_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[workflow_id] -= 1
            if not self._lock_users[workflow_id]:
                del self._lock_users[workflow_id]
                del self._locks[workflow_id]
