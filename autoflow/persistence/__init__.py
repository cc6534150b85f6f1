"""Persistence layer for workflow definitions and execution records."""

from __future__ import annotations

import os
from typing import Optional

from ..config import AutoflowConfig, load_config
from .inmemory import InMemoryExecutionStore
from .models import ExecutionStatus, ResourceTotals, StepResult, WorkflowExecution
from .repository import ExecutionStore
from .sqlite import SQLiteExecutionStore

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresExecutionStore
except ImportError:  # pragma: no cover - optional dependency
    PostgresExecutionStore = None  # type: ignore

_store_instance: ExecutionStore | None = None


def get_store(
    database_url: Optional[str] = None, config: Optional[AutoflowConfig] = None
) -> ExecutionStore:
    """Factory function to obtain an execution store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``AUTOFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory store is returned.
    """

    global _store_instance
    if _store_instance is not None and database_url is None and config is None:
        return _store_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("AUTOFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _store_instance = InMemoryExecutionStore()
        return _store_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _store_instance = SQLiteExecutionStore(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresExecutionStore is None:
            raise RuntimeError("Postgres support not available")
        _store_instance = PostgresExecutionStore(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _store_instance


__all__ = [
    "ExecutionStatus",
    "ExecutionStore",
    "InMemoryExecutionStore",
    "PostgresExecutionStore",
    "ResourceTotals",
    "SQLiteExecutionStore",
    "StepResult",
    "WorkflowExecution",
    "get_store",
]
