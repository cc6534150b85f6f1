"""State machine driving one workflow execution to a terminal state."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from .cancellation import CancelToken
from .config import EngineConfig
from .contracts import STEP_CONFIGS, Step, Workflow, utcnow
from .errors import (
    ExecutionCancelled,
    ExecutionFinalizedError,
    StepExecutionError,
    StorePersistenceError,
)
from .execute import StepExecutor
from .logs import ExecutionLog
from .persistence import ExecutionStatus, ExecutionStore, StepResult, WorkflowExecution
from .resources import ResourceAccumulator
from .stats import NullStatisticsSink, StatisticsSink
from .utils.retry import compute_backoff, policy_backoff, schedule_retry

logger = logging.getLogger(__name__)

STORE_RETRY_INITIAL_DELAY = 0.05


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class ExecutionCoordinator:
    """Owns the lifecycle of exactly one ``WorkflowExecution``.

    The coordinator is the record's only writer. It walks the steps strictly
    in order, persisting progress after each one, and finishes with a single
    terminal write (``completed``, ``failed`` or ``cancelled``). No write is
    accepted after that.
    """

    def __init__(
        self,
        store: ExecutionStore,
        step_executor: StepExecutor,
        stats_sink: StatisticsSink | None = None,
        engine_config: EngineConfig | None = None,
        cancel_token: CancelToken | None = None,
    ) -> None:
        self._store = store
        self._step_executor = step_executor
        self._stats_sink = stats_sink or NullStatisticsSink()
        self._config = engine_config or EngineConfig()
        self._cancel_token = cancel_token
        self._execution: Optional[WorkflowExecution] = None
        self._finalized = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    async def run(
        self, workflow: Workflow, execution: WorkflowExecution, test_mode: bool = False
    ) -> WorkflowExecution:
        """Execute every step of ``workflow`` against ``execution``.

        Never raises for step, persistence or cancellation failures; those
        end the run in a terminal status instead.
        """
        if self._execution is not None:
            raise RuntimeError("A coordinator runs a single execution")
        self._execution = execution.model_copy(deep=True)
        token = self._cancel_token or CancelToken(execution.id)
        log = ExecutionLog(execution.id, execution.execution_logs)
        accumulator = ResourceAccumulator(execution.resources_consumed)
        step_results: List[StepResult] = list(execution.step_results)

        logger.info(f"Starting workflow execution: {execution.id}")
        log.started(utcnow(), execution.trigger_data)

        try:
            for index, step in enumerate(workflow.steps):
                token.raise_if_cancelled()
                log.step_started(index, step.type)
                await self._persist(
                    current_step=index + 1, execution_logs=log.snapshot()
                )

                result = await self._run_step(
                    workflow, index, step, step_results, test_mode, token, log
                )
                step_results.append(result)

                if result.success:
                    accumulator.add(result.resources)
                    log.step_completed(index)
                    await self._persist(
                        completed_steps=index + 1,
                        step_results=step_results,
                        execution_logs=log.snapshot(),
                        resources_consumed=accumulator.totals,
                    )
                    continue

                # unknown step types always abort the run
                if step.critical or step.type not in STEP_CONFIGS:
                    await self._persist(
                        step_results=step_results, execution_logs=log.snapshot()
                    )
                    raise StepExecutionError(result.error or "Unknown error")
                log.step_skipped(index)
                await self._persist(step_results=step_results, execution_logs=log.snapshot())
        except ExecutionCancelled:
            status, error = ExecutionStatus.CANCELLED, "Execution cancelled"
        except (StepExecutionError, StorePersistenceError) as exc:
            logger.error(f"Workflow execution failed: {execution.id}: {exc}")
            status, error = ExecutionStatus.FAILED, str(exc)
        except Exception as exc:
            logger.exception(f"Workflow execution crashed: {execution.id}")
            status, error = ExecutionStatus.FAILED, str(exc) or "Unknown error"
        else:
            status, error = ExecutionStatus.COMPLETED, None

        await self._finalize(workflow, status, log, accumulator, step_results, error)
        return self._execution.model_copy(deep=True)

    # ------------------------------------------------------------------
    async def _run_step(
        self,
        workflow: Workflow,
        index: int,
        step: Step,
        prior_results: List[StepResult],
        test_mode: bool,
        token: CancelToken,
        log: ExecutionLog,
    ) -> StepResult:
        """Invoke a step, retrying per the workflow's retry policy."""
        policy = workflow.retry_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                outcome = await self._step_executor.execute(
                    step,
                    self._execution.trigger_data,
                    prior_results,
                    test_mode,
                    index=index,
                    cancel_token=token,
                    execution_id=self._execution.id,
                )
            except StepExecutionError as exc:
                error = str(exc)
                log.step_failed(index, error)
                retries_used = attempt - 1
                if not exc.retryable or retries_used >= policy.max_retries:
                    return StepResult(
                        step_index=index,
                        step_type=step.type,
                        error=error,
                        success=False,
                        attempts=attempt,
                    )
                delay = policy_backoff(policy, retries_used + 1)
                log.retrying(index, retries_used + 1, policy.max_retries, delay * 1000)
                logger.warning(
                    f"Retrying step {index + 1} of {self._execution.id} in {delay:.2f}s: {error}"
                )
                await schedule_retry(delay, token)
                token.raise_if_cancelled()
                continue

            return StepResult(
                step_index=index,
                step_type=step.type,
                result=outcome.result,
                success=True,
                attempts=attempt,
                resources=outcome.delta,
            )

    async def _persist(self, **fields: Any) -> None:
        """Apply ``fields`` locally and write them to the store with retries."""
        if self._finalized:
            raise ExecutionFinalizedError(
                f"Execution {self._execution.id} is already {self._execution.status.value}"
            )
        for name, value in fields.items():
            setattr(self._execution, name, value)

        retries = self._config.store_write_retries
        attempt = 0
        while True:
            try:
                await self._store.update_execution(self._execution.id, fields)
                return
            except Exception as exc:
                attempt += 1
                if attempt > retries:
                    raise StorePersistenceError(
                        f"Failed to persist execution progress: {exc}"
                    ) from exc
                delay = compute_backoff(attempt, initial=STORE_RETRY_INITIAL_DELAY)
                logger.warning(
                    f"Store write failed for {self._execution.id} "
                    f"(attempt {attempt}/{retries}), retrying in {delay:.2f}s: {exc}"
                )
                await schedule_retry(delay)

    def _duration_ms(self, workflow: Workflow, completed_at: datetime) -> int:
        if self._config.duration_basis == "started":
            basis = self._execution.started_at
        else:
            basis = workflow.created_at
        return int((completed_at - _as_utc(basis)).total_seconds() * 1000)

    async def _finalize(
        self,
        workflow: Workflow,
        status: ExecutionStatus,
        log: ExecutionLog,
        accumulator: ResourceAccumulator,
        step_results: List[StepResult],
        error: str | None = None,
    ) -> None:
        completed_at = utcnow()
        fields: dict[str, Any] = {
            "status": status,
            "completed_at": completed_at,
            "duration": self._duration_ms(workflow, completed_at),
        }
        if status is ExecutionStatus.COMPLETED:
            totals = accumulator.totals
            fields["final_result"] = {
                "success": True,
                "stepsCompleted": len(step_results),
                "totalSteps": len(workflow.steps),
                "resourcesConsumed": totals.to_public(),
            }
            log.completed(completed_at)
        elif status is ExecutionStatus.CANCELLED:
            fields["error_message"] = error
            log.cancelled(completed_at)
        else:
            fields["error_message"] = error
            log.failed(completed_at, error or "Unknown error")
        fields["execution_logs"] = log.snapshot()

        try:
            await self._persist(**fields)
        except StorePersistenceError as exc:
            logger.error(f"Could not record terminal state for {self._execution.id}: {exc}")
        finally:
            self._finalized = True

        success = status is ExecutionStatus.COMPLETED
        try:
            await self._stats_sink.record_run(workflow.id, success)
        except Exception as exc:
            logger.warning(f"Statistics sink failed for workflow {workflow.id}: {exc}")

        if success:
            logger.info(f"Workflow execution completed: {self._execution.id}")
        else:
            logger.info(f"Workflow execution {status.value}: {self._execution.id}")
