"""Statistics sinks receiving one terminal signal per finished execution."""

from __future__ import annotations

import logging
import os
from collections import Counter
from typing import Optional, Protocol

from .config import AutoflowConfig, load_config

logger = logging.getLogger(__name__)


class StatisticsSink(Protocol):
    """External aggregator of per-workflow run outcomes."""

    async def record_run(self, workflow_id: str, success: bool) -> None:
        """Record one terminal outcome for ``workflow_id``."""


class NullStatisticsSink:
    """Discard all signals."""

    async def record_run(self, workflow_id: str, success: bool) -> None:
        logger.debug(f"Discarding stats signal for {workflow_id} (success={success})")


class InMemoryStatisticsSink:
    """Keep counters in process; useful for tests and the CLI."""

    def __init__(self) -> None:
        self.successes: Counter[str] = Counter()
        self.failures: Counter[str] = Counter()

    async def record_run(self, workflow_id: str, success: bool) -> None:
        if success:
            self.successes[workflow_id] += 1
        else:
            self.failures[workflow_id] += 1

    def total_runs(self, workflow_id: str) -> int:
        return self.successes[workflow_id] + self.failures[workflow_id]


def get_stats_sink(
    database_url: Optional[str] = None, config: Optional[AutoflowConfig] = None
) -> StatisticsSink:
    """Return a SQL-backed sink when a stats database is configured."""

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("AUTOFLOW_STATS_DATABASE_URL")
        or config.stats_database_url
    )
    if not database_url:
        return InMemoryStatisticsSink()

    from .db import WorkflowStatsDB

    return WorkflowStatsDB(database_url)
