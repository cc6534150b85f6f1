"""Data models for persisted execution state."""

from __future__ import annotations

import json
import secrets
import string
import time
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, field_serializer
from pydantic_core import to_jsonable_python

from ..contracts import CamelModel, ResourceDelta, Workflow, utcnow


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


class ResourceTotals(CamelModel):
    """Cumulative resource usage for one execution."""

    api_calls: int = 0
    cost: Decimal = Decimal("0")
    processing_time_ms: int = Field(default=0, alias="processingTime")
    agents_involved: List[str] = Field(default_factory=list)

    @field_serializer("cost", when_used="json")
    def _cost_as_number(self, cost: Decimal) -> float:
        return float(cost)


class StepResult(CamelModel):
    """Record of one attempted step, successful or not."""

    step_index: int
    step_type: str
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    executed_at: datetime = Field(default_factory=utcnow)
    success: bool
    attempts: int = 1
    resources: ResourceDelta = Field(default_factory=ResourceDelta)


def new_execution_id() -> str:
    """Return an id of the form ``exec_<epoch-ms>_<9 chars>``."""
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"exec_{int(time.time() * 1000)}_{suffix}"


class WorkflowExecution(CamelModel):
    """One run of a workflow, from admission to terminal state."""

    id: str = Field(default_factory=new_execution_id)
    workflow_id: str
    user_id: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    total_steps: int = 0
    current_step: int = 0
    completed_steps: int = 0
    step_results: List[StepResult] = Field(default_factory=list)
    execution_logs: List[str] = Field(default_factory=list)
    resources_consumed: ResourceTotals = Field(default_factory=ResourceTotals)
    final_result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, description="Milliseconds")

    @classmethod
    def start(
        cls, workflow: Workflow, user_id: str, trigger_data: dict | None = None
    ) -> "WorkflowExecution":
        """Build the initial ``running`` record for ``workflow``."""
        return cls(
            workflow_id=workflow.id,
            user_id=user_id,
            trigger_data=trigger_data or {},
            total_steps=len(workflow.steps),
        )


EXECUTION_FIELDS = frozenset(WorkflowExecution.model_fields)
JSON_FIELDS = frozenset(
    {"trigger_data", "step_results", "execution_logs", "resources_consumed", "final_result"}
)


def check_fields(fields: Dict[str, Any]) -> None:
    unknown = set(fields) - EXECUTION_FIELDS
    if unknown:
        raise ValueError(f"Unknown execution fields: {sorted(unknown)}")
    if "id" in fields:
        raise ValueError("Execution id cannot be updated")


def encode_field(name: str, value: Any) -> Any:
    """Encode a field value for SQL backends.

    JSON columns are stored as text; enums collapse to their value. Datetimes
    are passed through for the backend to handle.
    """
    if name in JSON_FIELDS:
        if value is None:
            return None
        return json.dumps(to_jsonable_python(value, by_alias=True))
    if isinstance(value, Enum):
        return value.value
    return value


def decode_json(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value
