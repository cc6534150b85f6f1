"""Cooperative cancellation for running executions."""

from __future__ import annotations

import asyncio

from .errors import ExecutionCancelled


class CancelToken:
    """Flag checked by the coordinator between steps and inside waits."""

    def __init__(self, execution_id: str) -> None:
        self.execution_id = execution_id
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExecutionCancelled(self.execution_id)

    async def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; return True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True
