import asyncio

import pytest

from autoflow.config import AutoflowConfig
from autoflow.db import WorkflowStatsDB
from autoflow.stats import InMemoryStatisticsSink, get_stats_sink


@pytest.mark.asyncio
async def test_in_memory_sink_counts_outcomes():
    sink = InMemoryStatisticsSink()
    await sink.record_run("wf-1", True)
    await sink.record_run("wf-1", False)
    await sink.record_run("wf-1", True)

    assert sink.successes["wf-1"] == 2
    assert sink.failures["wf-1"] == 1
    assert sink.total_runs("wf-1") == 3
    assert sink.total_runs("wf-2") == 0


@pytest.mark.asyncio
async def test_stats_db_records_runs(tmp_path):
    db = WorkflowStatsDB(f"sqlite+aiosqlite:///{tmp_path / 'stats.db'}")

    assert await db.get_stats("wf-1") is None

    await db.record_run("wf-1", True)
    await db.record_run("wf-1", False)
    await db.record_run("wf-1", True)

    stats = await db.get_stats("wf-1")
    assert stats is not None
    assert stats.total_runs == 3
    assert stats.successful_runs == 2
    assert stats.failed_runs == 1
    assert stats.last_run_at is not None
    await db.engine.dispose()


@pytest.mark.asyncio
async def test_stats_db_concurrent_runs_are_all_counted(tmp_path):
    db = WorkflowStatsDB(f"sqlite+aiosqlite:///{tmp_path / 'stats.db'}")

    await asyncio.gather(
        *[db.record_run("wf-x", i % 3 != 0) for i in range(10)]
    )

    stats = await db.get_stats("wf-x")
    assert stats.total_runs == 10
    assert stats.successful_runs == 6
    assert stats.failed_runs == 4
    await db.engine.dispose()


def test_get_stats_sink_selection(tmp_path):
    assert isinstance(get_stats_sink(config=AutoflowConfig()), InMemoryStatisticsSink)

    config = AutoflowConfig(stats_database_url=f"sqlite+aiosqlite:///{tmp_path / 's.db'}")
    assert isinstance(get_stats_sink(config=config), WorkflowStatsDB)
