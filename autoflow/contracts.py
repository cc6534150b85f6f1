"""Workflow definition contracts consumed by the execution engine."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .constants import (
    DEFAULT_DELAY_MS,
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    DEFAULT_RETRY_INITIAL_DELAY_MS,
)
from .errors import UnknownStepTypeError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model exchanged as camelCase JSON, accessed as snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_public(self) -> dict[str, Any]:
        """Serialize to the caller-facing camelCase shape."""
        return self.model_dump(mode="json", by_alias=True)


# ----------------------------------------------------------------------
# Step configuration variants


class TriggerConfig(CamelModel):
    """Entry step; echoes the trigger payload."""

    kind: ClassVar[str] = "trigger"


class ActionConfig(CamelModel):
    kind: ClassVar[str] = "action"

    action_type: str = "unknown"
    agent_id: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)


class ConditionConfig(CamelModel):
    """Boolean check evaluated against the step context.

    ``field_path`` is a dotted path into ``{"trigger": ..., "steps": [...]}``.
    Without a path the condition is considered met.
    """

    kind: ClassVar[str] = "condition"

    condition: str = "default"
    field_path: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("field", "fieldPath", "field_path")
    )
    operator: Literal["eq", "ne", "gt", "gte", "lt", "lte", "exists", "truthy"] = (
        "truthy"
    )
    value: Any = None


class DelayConfig(CamelModel):
    kind: ClassVar[str] = "delay"

    delay: int = Field(
        default=DEFAULT_DELAY_MS,
        ge=0,
        validation_alias=AliasChoices("delay", "delayMs", "delay_ms"),
    )


class AgentConfig(CamelModel):
    kind: ClassVar[str] = "agent"

    agent_id: str = "unknown"
    task: str = "Generic task"
    params: Dict[str, Any] = Field(default_factory=dict)


StepConfig = Union[TriggerConfig, ActionConfig, ConditionConfig, DelayConfig, AgentConfig]

STEP_CONFIGS: Dict[str, type[CamelModel]] = {
    model.kind: model
    for model in (TriggerConfig, ActionConfig, ConditionConfig, DelayConfig, AgentConfig)
}


# ----------------------------------------------------------------------
# Workflow definition


class Step(CamelModel):
    """One unit of work within a workflow."""

    type: str
    config: Dict[str, Any] = Field(default_factory=dict)
    critical: bool = True
    timeout: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _critical_from_config(cls, data: Any) -> Any:
        # older definitions carry the flag inside ``config``
        if isinstance(data, dict) and "critical" not in data:
            config = data.get("config") or {}
            if "critical" in config:
                data = {**data, "critical": config["critical"]}
        return data

    def typed_config(self) -> StepConfig:
        """Parse ``config`` into the variant selected by ``type``."""
        model = STEP_CONFIGS.get(self.type)
        if model is None:
            raise UnknownStepTypeError(self.type)
        return model.model_validate(self.config)


class RetryPolicy(CamelModel):
    max_retries: int = Field(default=0, ge=0)
    backoff_multiplier: float = Field(default=DEFAULT_RETRY_BACKOFF_MULTIPLIER, ge=1)
    initial_delay: int = Field(
        default=DEFAULT_RETRY_INITIAL_DELAY_MS, ge=0, description="Milliseconds"
    )


class Workflow(CamelModel):
    """A stored automation workflow. Read-only to the engine."""

    id: str
    user_id: str
    name: str = ""
    steps: List[Step] = Field(default_factory=list)
    enabled: bool = True
    max_concurrent_runs: int = Field(default=1, ge=1)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    created_at: datetime = Field(default_factory=utcnow)


# ----------------------------------------------------------------------
# Step outcomes


class ResourceDelta(CamelModel):
    """Resources consumed by a single step."""

    api_calls: int = 0
    cost: Decimal = Decimal("0")
    processing_time_ms: int = Field(default=0, alias="processingTime")
    agent_id: Optional[str] = None

    @field_serializer("cost", when_used="json")
    def _cost_as_number(self, cost: Decimal) -> float:
        return float(cost)


class StepOutcome(BaseModel):
    """Structured result of one successful step invocation."""

    success: bool = True
    result: Dict[str, Any] = Field(default_factory=dict)
    delta: ResourceDelta = Field(default_factory=ResourceDelta)


class RunHandle(CamelModel):
    """Returned to the caller as soon as the execution record exists."""

    execution_id: str
    status: str = "running"
