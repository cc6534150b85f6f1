"""End-to-end runs against the SQLite store and SQL statistics sink."""

from decimal import Decimal

import pytest

from autoflow import StatusQueryService, WorkflowDispatcher
from autoflow.actions import ActionRegistry
from autoflow.config import AutoflowConfig, EngineConfig
from autoflow.contracts import Workflow
from autoflow.db import WorkflowStatsDB
from autoflow.persistence import ExecutionStatus, SQLiteExecutionStore
from autoflow.resources import ResourceAccumulator


def _workflow() -> Workflow:
    return Workflow.model_validate(
        {
            "id": "wf-onboarding",
            "userId": "user-1",
            "name": "Customer onboarding",
            "maxConcurrentRuns": 2,
            "retryPolicy": {"maxRetries": 1, "initialDelay": 0},
            "steps": [
                {"type": "trigger"},
                {
                    "type": "condition",
                    "config": {"field": "trigger.plan", "operator": "eq", "value": "pro"},
                },
                {"type": "action", "config": {"actionType": "send_welcome", "agentId": "mailer"}},
                {"type": "delay", "config": {"delay": 30_000}},
                {"type": "agent", "config": {"agentId": "success-manager", "task": "Kickoff"}},
                {"type": "action", "config": {"actionType": "notify_slack", "critical": False}},
            ],
        }
    )


@pytest.mark.asyncio
async def test_sqlite_end_to_end(tmp_path):
    store = SQLiteExecutionStore(tmp_path / "autoflow.db")
    stats = WorkflowStatsDB(f"sqlite+aiosqlite:///{tmp_path / 'stats.db'}")
    registry = ActionRegistry()
    attempts = {"welcome": 0}

    @registry.action("send_welcome")
    async def send_welcome(config, context):
        attempts["welcome"] += 1
        if attempts["welcome"] == 1:
            raise ConnectionError("smtp timeout")
        return {"sent": True, "plan": context.trigger_data["plan"]}

    @registry.action("notify_slack")
    async def notify_slack(config, context):
        raise RuntimeError("slack webhook rejected")

    await store.save_workflow(_workflow())
    dispatcher = WorkflowDispatcher(
        store=store,
        stats_sink=stats,
        config=AutoflowConfig(engine=EngineConfig(duration_basis="started")),
        registry=registry,
    )

    handle = await dispatcher.start_run("wf-onboarding", "user-1", {"plan": "pro"}, test_mode=True)
    await dispatcher.wait(handle.execution_id)

    stored = await store.get_execution(handle.execution_id, "user-1")
    assert stored.status is ExecutionStatus.COMPLETED
    assert stored.current_step == 6
    assert stored.completed_steps == 5
    assert [r.success for r in stored.step_results] == [True, True, True, True, True, False]
    assert stored.step_results[1].result == {"conditionMet": True, "condition": "default"}
    assert stored.step_results[2].attempts == 2
    assert stored.step_results[2].result == {"sent": True, "plan": "pro"}
    assert stored.step_results[3].result == {"delayMs": 0}
    assert stored.resources_consumed.api_calls == 3
    assert stored.resources_consumed.cost == Decimal("0.06")
    assert stored.resources_consumed.agents_involved == ["mailer", "success-manager"]
    assert stored.resources_consumed == ResourceAccumulator.recompute(stored.step_results)
    assert stored.final_result["resourcesConsumed"]["cost"] == 0.06
    assert "Step 6 is non-critical, continuing" in stored.execution_logs

    summaries = await StatusQueryService(store).list_recent("wf-onboarding", "user-1")
    assert [s.id for s in summaries] == [handle.execution_id]
    assert summaries[0].duration is not None

    row = await stats.get_stats("wf-onboarding")
    assert row.total_runs == 1
    assert row.successful_runs == 1
    await stats.engine.dispose()


@pytest.mark.asyncio
async def test_sqlite_store_survives_reopen(tmp_path):
    path = tmp_path / "autoflow.db"
    store = SQLiteExecutionStore(path)
    await store.save_workflow(_workflow())
    dispatcher = WorkflowDispatcher(
        store=store, config=AutoflowConfig(), stats_sink=None, registry=ActionRegistry()
    )
    handle = await dispatcher.start_run("wf-onboarding", "user-1", {"plan": "free"}, test_mode=True)
    await dispatcher.wait(handle.execution_id)

    reopened = SQLiteExecutionStore(path)
    stored = await reopened.get_execution(handle.execution_id)
    assert stored is not None
    assert stored.status is ExecutionStatus.COMPLETED
    assert stored.step_results[1].result["conditionMet"] is False
    assert stored.execution_logs[-1].startswith("Workflow completed successfully at ")
