"""Step execution for autoflow workflows."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from .actions import ActionExecutor, ActionRegistry, StepContext
from .cancellation import CancelToken
from .constants import ACTION_API_CALLS, ACTION_COST, AGENT_API_CALLS, AGENT_COST
from .contracts import (
    ActionConfig,
    AgentConfig,
    ConditionConfig,
    DelayConfig,
    ResourceDelta,
    Step,
    StepConfig,
    StepOutcome,
    TriggerConfig,
)
from .errors import (
    ActionExecutorError,
    ExecutionCancelled,
    StepExecutionError,
    StepTimeoutError,
)
from .persistence.models import StepResult

logger = logging.getLogger(__name__)

_MISSING = object()


def resolve_path(data: Any, path: str) -> Any:
    """Follow a dotted path through dicts and lists; ``_MISSING`` if absent."""
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return _MISSING
        else:
            return _MISSING
    return current


def evaluate_condition(config: ConditionConfig, lookup: dict[str, Any]) -> bool:
    if config.field_path is None:
        return True
    actual = resolve_path(lookup, config.field_path)
    if config.operator == "exists":
        return actual is not _MISSING
    if actual is _MISSING:
        return False
    if config.operator == "truthy":
        return bool(actual)
    if config.operator == "eq":
        return actual == config.value
    if config.operator == "ne":
        return actual != config.value
    try:
        if config.operator == "gt":
            return actual > config.value
        if config.operator == "gte":
            return actual >= config.value
        if config.operator == "lt":
            return actual < config.value
        if config.operator == "lte":
            return actual <= config.value
    except TypeError as exc:
        raise StepExecutionError(
            f"Cannot compare {actual!r} {config.operator} {config.value!r}",
            retryable=False,
        ) from exc
    raise StepExecutionError(f"Unsupported operator: {config.operator}", retryable=False)


class StepExecutor:
    """Executes a single workflow step and reports its resource usage."""

    def __init__(
        self,
        registry: ActionRegistry | None = None,
        default_timeout: Optional[float] = None,
    ) -> None:
        self.registry = registry or ActionRegistry()
        self.default_timeout = default_timeout

    def parse_config(self, step: Step) -> StepConfig:
        """Return the typed config for ``step`` or raise a non-retryable error."""
        try:
            return step.typed_config()
        except ValidationError as exc:
            raise StepExecutionError(
                f"Invalid {step.type} step config: {exc.errors()[0]['msg']}",
                retryable=False,
            ) from exc

    async def execute(
        self,
        step: Step,
        trigger_data: dict[str, Any],
        prior_results: Sequence[StepResult] = (),
        test_mode: bool = False,
        *,
        index: int = 0,
        cancel_token: CancelToken | None = None,
        execution_id: str | None = None,
    ) -> StepOutcome:
        """Run ``step`` and return its outcome.

        Raises:
            StepExecutionError: the step failed; ``retryable`` tells whether
                the workflow's retry policy applies.
            ExecutionCancelled: cancellation was requested during a wait.
        """
        config = self.parse_config(step)
        context = StepContext(
            execution_id=execution_id,
            trigger_data=trigger_data,
            prior_results=[r.to_public() for r in prior_results],
            test_mode=test_mode,
        )
        started = time.monotonic()

        if isinstance(config, TriggerConfig):
            outcome = StepOutcome(result={"data": trigger_data})
        elif isinstance(config, ActionConfig):
            outcome = await self._run_action(step, index, config, context)
        elif isinstance(config, ConditionConfig):
            met = evaluate_condition(config, context.as_lookup())
            outcome = StepOutcome(
                result={"conditionMet": met, "condition": config.condition}
            )
        elif isinstance(config, DelayConfig):
            outcome = await self._run_delay(config, test_mode, cancel_token)
        elif isinstance(config, AgentConfig):
            outcome = await self._run_agent(step, index, config, context)
        else:  # pragma: no cover - STEP_CONFIGS and this chain are kept in sync
            raise StepExecutionError(f"Unhandled step config: {type(config)}", retryable=False)

        outcome.delta.processing_time_ms = int((time.monotonic() - started) * 1000)
        return outcome

    # ------------------------------------------------------------------
    async def _run_action(
        self, step: Step, index: int, config: ActionConfig, context: StepContext
    ) -> StepOutcome:
        executor = self.registry.resolve_action(config.action_type)
        payload = await self._invoke(executor, step, index, config, context)
        return StepOutcome(
            result=payload,
            delta=ResourceDelta(
                api_calls=ACTION_API_CALLS, cost=ACTION_COST, agent_id=config.agent_id
            ),
        )

    async def _run_agent(
        self, step: Step, index: int, config: AgentConfig, context: StepContext
    ) -> StepOutcome:
        executor = self.registry.resolve_agent(config.agent_id)
        payload = await self._invoke(executor, step, index, config, context)
        return StepOutcome(
            result=payload,
            delta=ResourceDelta(
                api_calls=AGENT_API_CALLS, cost=AGENT_COST, agent_id=config.agent_id
            ),
        )

    async def _run_delay(
        self, config: DelayConfig, test_mode: bool, cancel_token: CancelToken | None
    ) -> StepOutcome:
        if not test_mode and config.delay > 0:
            seconds = config.delay / 1000
            if cancel_token is None:
                await asyncio.sleep(seconds)
            elif await cancel_token.wait(seconds):
                raise ExecutionCancelled(cancel_token.execution_id)
        return StepOutcome(result={"delayMs": 0 if test_mode else config.delay})

    async def _invoke(
        self,
        executor: ActionExecutor,
        step: Step,
        index: int,
        config: ActionConfig | AgentConfig,
        context: StepContext,
    ) -> dict[str, Any]:
        timeout = step.timeout or self.default_timeout
        try:
            if timeout:
                payload = await asyncio.wait_for(executor(config, context), timeout=timeout)
            else:
                payload = await executor(config, context)
        except asyncio.TimeoutError as exc:
            raise StepTimeoutError(index, timeout) from exc
        except StepExecutionError:
            raise
        except Exception as exc:
            raise ActionExecutorError(str(exc) or type(exc).__name__) from exc
        return payload if isinstance(payload, dict) else {"result": payload}
