"""SQLite implementation of the execution store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from ..contracts import Workflow
from .models import (
    JSON_FIELDS,
    ExecutionStatus,
    WorkflowExecution,
    check_fields,
    decode_json,
    encode_field,
)
from .repository import ExecutionStore

_EXECUTION_COLUMNS = (
    "id",
    "workflow_id",
    "user_id",
    "status",
    "trigger_data",
    "total_steps",
    "current_step",
    "completed_steps",
    "step_results",
    "execution_logs",
    "resources_consumed",
    "final_result",
    "error_message",
    "started_at",
    "completed_at",
    "duration",
)
_SELECT_EXECUTION = f"SELECT {', '.join(_EXECUTION_COLUMNS)} FROM workflow_executions"


def _to_column(name: str, value: Any) -> Any:
    value = encode_field(name, value)
    if isinstance(value, datetime):
        return value.isoformat(timespec="microseconds")
    return value


class SQLiteExecutionStore(ExecutionStore):
    """Persist workflows and executions using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                definition TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                status TEXT NOT NULL,
                trigger_data TEXT,
                total_steps INTEGER NOT NULL,
                current_step INTEGER DEFAULT 0,
                completed_steps INTEGER DEFAULT 0,
                step_results TEXT,
                execution_logs TEXT,
                resources_consumed TEXT,
                final_result TEXT,
                error_message TEXT,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                duration INTEGER
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflow_executions_workflow_status "
            "ON workflow_executions (workflow_id, status)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def _insert_params(self, execution: WorkflowExecution) -> tuple[str, list[Any]]:
        placeholders = ", ".join("?" for _ in _EXECUTION_COLUMNS)
        query = (
            f"INSERT INTO workflow_executions ({', '.join(_EXECUTION_COLUMNS)}) "
            f"VALUES ({placeholders})"
        )
        params = [_to_column(c, getattr(execution, c)) for c in _EXECUTION_COLUMNS]
        return query, params

    def _reserve(self, execution: WorkflowExecution, limit: int) -> tuple[bool, int]:
        query, params = self._insert_params(execution)
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                cur.execute(
                    "SELECT COUNT(*) FROM workflow_executions WHERE workflow_id = ? AND status = ?",
                    (execution.workflow_id, ExecutionStatus.RUNNING.value),
                )
                current = cur.fetchone()[0]
                if current >= limit:
                    self._conn.rollback()
                    return False, current
                cur.execute(query, params)
                self._conn.commit()
                return True, current
            except Exception:
                self._conn.rollback()
                raise

    @staticmethod
    def _row_to_execution(row: sqlite3.Row) -> WorkflowExecution:
        data = {c: row[c] for c in _EXECUTION_COLUMNS}
        for name in JSON_FIELDS:
            data[name] = decode_json(data[name])
        data = {k: v for k, v in data.items() if v is not None}
        return WorkflowExecution.model_validate(data)

    # ------------------------------------------------------------------
    # Store API
    async def save_workflow(self, workflow: Workflow) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO workflows (id, user_id, definition) VALUES (?, ?, ?)",
            workflow.id,
            workflow.user_id,
            workflow.model_dump_json(by_alias=True),
        )

    async def get_workflow(
        self, workflow_id: str, user_id: str | None = None
    ) -> Workflow | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT user_id, definition FROM workflows WHERE id = ?",
            workflow_id,
        )
        if not row or (user_id is not None and row["user_id"] != user_id):
            return None
        return Workflow.model_validate(json.loads(row["definition"]))

    async def create_execution(self, execution: WorkflowExecution) -> None:
        query, params = self._insert_params(execution)
        await asyncio.to_thread(self._execute, query, *params)

    async def reserve_execution(
        self, execution: WorkflowExecution, limit: int
    ) -> tuple[bool, int]:
        return await asyncio.to_thread(self._reserve, execution, limit)

    async def count_running(self, workflow_id: str) -> int:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT COUNT(*) AS n FROM workflow_executions WHERE workflow_id = ? AND status = ?",
            workflow_id,
            ExecutionStatus.RUNNING.value,
        )
        return row["n"] if row else 0

    async def update_execution(self, execution_id: str, fields: dict[str, Any]) -> None:
        check_fields(fields)
        if not fields:
            return
        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = [_to_column(name, value) for name, value in fields.items()]
        await asyncio.to_thread(
            self._execute,
            f"UPDATE workflow_executions SET {assignments} WHERE id = ?",
            *params,
            execution_id,
        )

    async def get_execution(
        self, execution_id: str, user_id: str | None = None
    ) -> WorkflowExecution | None:
        row = await asyncio.to_thread(
            self._fetchone, f"{_SELECT_EXECUTION} WHERE id = ?", execution_id
        )
        if not row or (user_id is not None and row["user_id"] != user_id):
            return None
        return self._row_to_execution(row)

    async def list_executions(
        self, workflow_id: str, user_id: str | None = None, limit: int = 10
    ) -> list[WorkflowExecution]:
        if user_id is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"{_SELECT_EXECUTION} WHERE workflow_id = ? "
                "ORDER BY started_at DESC, rowid DESC LIMIT ?",
                workflow_id,
                limit,
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"{_SELECT_EXECUTION} WHERE workflow_id = ? AND user_id = ? "
                "ORDER BY started_at DESC, rowid DESC LIMIT ?",
                workflow_id,
                user_id,
                limit,
            )
        return [self._row_to_execution(r) for r in rows]
