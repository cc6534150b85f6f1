from __future__ import annotations

from typing import Any, Callable

import pytest

import autoflow.persistence as persistence
from autoflow.actions import ActionRegistry
from autoflow.config import EngineConfig
from autoflow.contracts import Workflow
from autoflow.persistence import InMemoryExecutionStore
from autoflow.stats import InMemoryStatisticsSink


class RecordingStore(InMemoryExecutionStore):
    """In-memory store that snapshots the record after every update."""

    def __init__(self) -> None:
        super().__init__()
        self.snapshots: list[dict[str, Any]] = []

    async def update_execution(self, execution_id: str, fields: dict[str, Any]) -> None:
        await super().update_execution(execution_id, fields)
        execution = await self.get_execution(execution_id)
        self.snapshots.append(
            {
                "status": execution.status,
                "current_step": execution.current_step,
                "completed_steps": execution.completed_steps,
                "total_steps": execution.total_steps,
            }
        )


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep host configuration and cached stores out of tests."""
    monkeypatch.setenv("AUTOFLOW_CONFIG", str(tmp_path / "missing-config.yaml"))
    for var in ("AUTOFLOW_DATABASE_URL", "DATABASE_URL", "AUTOFLOW_STATS_DATABASE_URL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(persistence, "_store_instance", None)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def stats_sink() -> InMemoryStatisticsSink:
    return InMemoryStatisticsSink()


@pytest.fixture
def registry() -> ActionRegistry:
    registry = ActionRegistry()

    @registry.action("explode")
    async def explode(config, context):
        raise RuntimeError("boom")

    return registry


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(step_timeout=None)


@pytest.fixture
def make_workflow() -> Callable[..., Workflow]:
    def _make(steps: list[dict[str, Any]], **overrides: Any) -> Workflow:
        data: dict[str, Any] = {
            "id": "wf-1",
            "userId": "user-1",
            "name": "test workflow",
            "steps": steps,
            "maxConcurrentRuns": 1,
        }
        data.update(overrides)
        return Workflow.model_validate(data)

    return _make
