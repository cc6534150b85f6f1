"""Workflow dispatcher: admits runs and schedules their coordinators."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from .actions import ActionRegistry
from .admission import AdmissionController
from .cancellation import CancelToken
from .config import AutoflowConfig, load_config
from .contracts import RunHandle, Workflow
from .coordinator import ExecutionCoordinator
from .errors import (
    ConcurrencyLimitReached,
    WorkflowDisabled,
    WorkflowNotExecutable,
    WorkflowNotFound,
)
from .execute import StepExecutor
from .persistence import ExecutionStore, WorkflowExecution, get_store
from .stats import StatisticsSink, get_stats_sink

logger = logging.getLogger(__name__)


class WorkflowDispatcher:
    """Entry point for starting, cancelling and awaiting workflow runs.

    ``start_run`` returns as soon as the execution record exists; the steps
    run on a background task owned by this dispatcher.
    """

    def __init__(
        self,
        store: ExecutionStore | None = None,
        step_executor: StepExecutor | None = None,
        stats_sink: StatisticsSink | None = None,
        config: AutoflowConfig | None = None,
        registry: ActionRegistry | None = None,
    ) -> None:
        self._config = config or load_config()
        self._store = store or get_store(config=self._config)
        self._step_executor = step_executor or StepExecutor(
            registry=registry, default_timeout=self._config.engine.step_timeout
        )
        self._stats_sink = stats_sink or get_stats_sink(config=self._config)
        self._admission = AdmissionController(self._store)
        self._tasks: Dict[str, asyncio.Task[WorkflowExecution]] = {}
        self._tokens: Dict[str, CancelToken] = {}

    @property
    def store(self) -> ExecutionStore:
        return self._store

    @property
    def admission(self) -> AdmissionController:
        return self._admission

    async def _load_workflow(
        self, workflow_id: str, user_id: str, test_mode: bool
    ) -> Workflow:
        workflow = await self._store.get_workflow(workflow_id, user_id)
        if workflow is None:
            raise WorkflowNotFound(workflow_id)
        if not workflow.enabled and not test_mode:
            raise WorkflowDisabled(workflow_id)
        if not workflow.steps:
            raise WorkflowNotExecutable(workflow_id)
        return workflow

    async def start_run(
        self,
        workflow_id: str,
        user_id: str,
        trigger_data: Optional[Dict[str, Any]] = None,
        test_mode: bool = False,
    ) -> RunHandle:
        """Admit and start a run of ``workflow_id`` on behalf of ``user_id``.

        Args:
            workflow_id: Workflow to execute.
            user_id: Authenticated principal; only their workflows are visible.
            trigger_data: Payload handed to the trigger step.
            test_mode: Skip delay waits and allow disabled workflows.

        Returns:
            Handle with the new execution id and ``running`` status.

        Raises:
            WorkflowNotFound, WorkflowDisabled, WorkflowNotExecutable,
            ConcurrencyLimitReached: the run was not admitted and no
            execution record was created.
        """
        workflow = await self._load_workflow(workflow_id, user_id, test_mode)
        execution = WorkflowExecution.start(workflow, user_id, trigger_data)

        decision = await self._admission.admit(workflow, execution)
        if not decision.admitted:
            raise ConcurrencyLimitReached(workflow_id, decision.current, decision.limit)

        token = CancelToken(execution.id)
        coordinator = ExecutionCoordinator(
            self._store,
            self._step_executor,
            stats_sink=self._stats_sink,
            engine_config=self._config.engine,
            cancel_token=token,
        )
        task = asyncio.create_task(
            coordinator.run(workflow, execution, test_mode),
            name=f"autoflow-{execution.id}",
        )
        self._tasks[execution.id] = task
        self._tokens[execution.id] = token
        task.add_done_callback(lambda _t, eid=execution.id: self._forget(eid))

        logger.info(
            f"Dispatched workflow {workflow_id} as {execution.id} (test_mode={test_mode})"
        )
        return RunHandle(execution_id=execution.id, status=execution.status.value)

    def cancel(self, execution_id: str) -> bool:
        """Request cooperative cancellation; False if the run is not active here."""
        token = self._tokens.get(execution_id)
        if token is None:
            return False
        token.cancel()
        logger.info(f"Execution {execution_id} marked for cancellation")
        return True

    async def wait(self, execution_id: str) -> WorkflowExecution | None:
        """Await a run started here, or read the stored record if it already ended."""
        task = self._tasks.get(execution_id)
        if task is None:
            return await self._store.get_execution(execution_id)
        return await task

    async def wait_all(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks.values()))

    def running_executions(self) -> list[str]:
        return [eid for eid, task in self._tasks.items() if not task.done()]

    def _forget(self, execution_id: str) -> None:
        self._tasks.pop(execution_id, None)
        self._tokens.pop(execution_id, None)
