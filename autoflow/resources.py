"""Running resource totals for one execution."""

from __future__ import annotations

from typing import Iterable

from .contracts import ResourceDelta
from .persistence.models import ResourceTotals, StepResult


class ResourceAccumulator:
    """Merge per-step resource deltas into a running total.

    Totals only ever grow; agent IDs are deduplicated in first-seen order.
    """

    def __init__(self, initial: ResourceTotals | None = None) -> None:
        self._totals = initial.model_copy(deep=True) if initial else ResourceTotals()

    def add(self, delta: ResourceDelta) -> ResourceTotals:
        totals = self._totals
        totals.api_calls += delta.api_calls
        totals.cost += delta.cost
        totals.processing_time_ms += delta.processing_time_ms
        if delta.agent_id and delta.agent_id not in totals.agents_involved:
            totals.agents_involved.append(delta.agent_id)
        return self.totals

    @property
    def totals(self) -> ResourceTotals:
        """Snapshot of the current totals."""
        return self._totals.model_copy(deep=True)

    @classmethod
    def recompute(cls, step_results: Iterable[StepResult]) -> ResourceTotals:
        acc = cls()
        for result in step_results:
            acc.add(result.resources)
        return acc.totals
