"""Append-only, human-readable progress log attached to an execution."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Iterable, List

logger = logging.getLogger(__name__)


class ExecutionLog:
    """Ordered progress lines for one execution.

    Lines are never removed or rewritten. Each line is mirrored to the
    module logger, prefixed with the execution id.
    """

    def __init__(self, execution_id: str, lines: Iterable[str] = ()) -> None:
        self.execution_id = execution_id
        self._lines: List[str] = list(lines)

    def append(self, line: str) -> None:
        self._lines.append(line)
        logger.info(f"[{self.execution_id}] {line}")

    def snapshot(self) -> list[str]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    # ------------------------------------------------------------------
    def started(self, at: datetime, trigger_data: dict[str, Any]) -> None:
        self.append(f"Workflow execution started at {at.isoformat()}")
        self.append(f"Trigger data: {json.dumps(trigger_data, default=str)}")

    def step_started(self, index: int, step_type: str) -> None:
        self.append(f"Starting step {index + 1}: {step_type}")

    def step_completed(self, index: int) -> None:
        self.append(f"Step {index + 1} completed successfully")

    def step_failed(self, index: int, error: str) -> None:
        self.append(f"Step {index + 1} failed: {error}")

    def step_skipped(self, index: int) -> None:
        self.append(f"Step {index + 1} is non-critical, continuing")

    def retrying(self, index: int, attempt: int, max_retries: int, delay_ms: float) -> None:
        self.append(
            f"Retrying step {index + 1} (attempt {attempt}/{max_retries}) in {delay_ms:.0f}ms..."
        )

    def completed(self, at: datetime) -> None:
        self.append(f"Workflow completed successfully at {at.isoformat()}")

    def failed(self, at: datetime, error: str) -> None:
        self.append(f"Workflow failed at {at.isoformat()}: {error}")

    def cancelled(self, at: datetime) -> None:
        self.append(f"Workflow cancelled at {at.isoformat()}")
