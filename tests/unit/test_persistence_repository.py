import asyncio
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from autoflow.contracts import Workflow
from autoflow.persistence import (
    ExecutionStatus,
    InMemoryExecutionStore,
    ResourceTotals,
    SQLiteExecutionStore,
    StepResult,
    WorkflowExecution,
)


def _workflow(**overrides) -> Workflow:
    data = {
        "id": "wf-1",
        "userId": "user-1",
        "name": "Lead follow-up",
        "steps": [{"type": "trigger"}, {"type": "action", "config": {"actionType": "send_email"}}],
        "maxConcurrentRuns": 2,
    }
    data.update(overrides)
    return Workflow.model_validate(data)


def _stores(tmp_path):
    return [InMemoryExecutionStore(), SQLiteExecutionStore(tmp_path / "exec.db")]


def test_execution_id_format():
    execution = WorkflowExecution.start(_workflow(), "user-1")
    assert re.fullmatch(r"exec_\d{13}_[a-z0-9]{9}", execution.id)
    assert execution.status is ExecutionStatus.RUNNING
    assert execution.total_steps == 2
    assert execution.current_step == 0
    assert execution.completed_steps == 0


@pytest.mark.asyncio
async def test_workflow_roundtrip_and_user_scoping(tmp_path):
    for store in _stores(tmp_path):
        await store.save_workflow(_workflow())

        wf = await store.get_workflow("wf-1", "user-1")
        assert wf is not None
        assert wf.max_concurrent_runs == 2
        assert wf.steps[1].typed_config().action_type == "send_email"

        assert await store.get_workflow("wf-1", "someone-else") is None
        assert await store.get_workflow("missing") is None


@pytest.mark.asyncio
async def test_execution_crud(tmp_path):
    for store in _stores(tmp_path):
        execution = WorkflowExecution.start(_workflow(), "user-1", {"lead": 42})
        await store.create_execution(execution)

        result = StepResult(
            step_index=0,
            step_type="action",
            result={"ok": True},
            success=True,
            resources={"apiCalls": 1, "cost": "0.01", "processingTime": 3},
        )
        totals = ResourceTotals(api_calls=1, cost=Decimal("0.01"), processing_time_ms=3)
        await store.update_execution(
            execution.id,
            {
                "current_step": 1,
                "completed_steps": 1,
                "step_results": [result],
                "execution_logs": ["Starting step 1: action"],
                "resources_consumed": totals,
            },
        )
        completed_at = datetime.now(timezone.utc)
        await store.update_execution(
            execution.id,
            {
                "status": ExecutionStatus.COMPLETED,
                "completed_at": completed_at,
                "duration": 120,
                "final_result": {"success": True},
            },
        )

        stored = await store.get_execution(execution.id, "user-1")
        assert stored is not None
        assert stored.status is ExecutionStatus.COMPLETED
        assert stored.trigger_data == {"lead": 42}
        assert stored.completed_steps == 1
        assert stored.step_results[0].result == {"ok": True}
        assert stored.step_results[0].resources.cost == Decimal("0.01")
        assert stored.resources_consumed == totals
        assert stored.execution_logs == ["Starting step 1: action"]
        assert stored.final_result == {"success": True}
        assert stored.duration == 120
        assert stored.completed_at == completed_at

        assert await store.get_execution(execution.id, "someone-else") is None


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields_and_id(tmp_path):
    for store in _stores(tmp_path):
        execution = WorkflowExecution.start(_workflow(), "user-1")
        await store.create_execution(execution)

        with pytest.raises(ValueError):
            await store.update_execution(execution.id, {"bogus": 1})
        with pytest.raises(ValueError):
            await store.update_execution(execution.id, {"id": "other"})


@pytest.mark.asyncio
async def test_inmemory_update_of_missing_execution_raises():
    store = InMemoryExecutionStore()
    with pytest.raises(KeyError):
        await store.update_execution("exec_missing", {"current_step": 1})


@pytest.mark.asyncio
async def test_inmemory_reads_are_copies():
    store = InMemoryExecutionStore()
    execution = WorkflowExecution.start(_workflow(), "user-1")
    await store.create_execution(execution)

    first = await store.get_execution(execution.id)
    first.execution_logs.append("mutated")

    second = await store.get_execution(execution.id)
    assert second.execution_logs == []


@pytest.mark.asyncio
async def test_reserve_respects_limit(tmp_path):
    for store in _stores(tmp_path):
        wf = _workflow()
        results = []
        for _ in range(3):
            results.append(
                await store.reserve_execution(WorkflowExecution.start(wf, "user-1"), limit=2)
            )
        assert results == [(True, 0), (True, 1), (False, 2)]
        assert await store.count_running("wf-1") == 2


@pytest.mark.asyncio
async def test_terminal_executions_do_not_count_as_running(tmp_path):
    for store in _stores(tmp_path):
        wf = _workflow()
        first = WorkflowExecution.start(wf, "user-1")
        await store.reserve_execution(first, limit=1)
        await store.update_execution(first.id, {"status": ExecutionStatus.FAILED})

        inserted, current = await store.reserve_execution(
            WorkflowExecution.start(wf, "user-1"), limit=1
        )
        assert inserted is True
        assert current == 0


@pytest.mark.asyncio
async def test_concurrent_reservations_never_exceed_limit(tmp_path):
    for store in _stores(tmp_path):
        wf = _workflow()
        outcomes = await asyncio.gather(
            *[
                store.reserve_execution(WorkflowExecution.start(wf, "user-1"), limit=2)
                for _ in range(6)
            ]
        )
        assert sum(1 for inserted, _ in outcomes if inserted) == 2
        assert await store.count_running("wf-1") == 2


@pytest.mark.asyncio
async def test_list_executions_newest_first_with_limit(tmp_path):
    for store in _stores(tmp_path):
        wf = _workflow()
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        ids = []
        for i in range(12):
            execution = WorkflowExecution.start(wf, "user-1")
            execution.started_at = base + timedelta(minutes=i)
            await store.create_execution(execution)
            ids.append(execution.id)
        other = WorkflowExecution.start(wf, "user-2")
        await store.create_execution(other)

        recent = await store.list_executions("wf-1", "user-1", limit=10)
        assert [e.id for e in recent] == list(reversed(ids))[:10]

        everyone = await store.list_executions("wf-1", limit=50)
        assert len(everyone) == 13
        assert await store.list_executions("wf-unknown", "user-1") == []
