"""PostgreSQL implementation of the execution store."""

from __future__ import annotations

import json
from typing import Any

import asyncpg

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


def _placeholder(name: str, position: int) -> str:
    return f"${position}::jsonb" if name in JSON_FIELDS else f"${position}"


class PostgresExecutionStore(ExecutionStore):
    """Persist workflows and executions using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                definition JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                status TEXT NOT NULL CHECK (status IN ('running', 'completed', 'failed', 'cancelled')),
                trigger_data JSONB,
                total_steps INTEGER NOT NULL,
                current_step INTEGER DEFAULT 0,
                completed_steps INTEGER DEFAULT 0,
                step_results JSONB DEFAULT '[]'::jsonb,
                execution_logs JSONB DEFAULT '[]'::jsonb,
                resources_consumed JSONB,
                final_result JSONB,
                error_message TEXT,
                started_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ,
                duration BIGINT
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflow_executions_workflow_status "
            "ON workflow_executions (workflow_id, status)"
        )

    # ------------------------------------------------------------------
    @staticmethod
    def _insert_query(execution: WorkflowExecution) -> tuple[str, list[Any]]:
        placeholders = ", ".join(
            _placeholder(c, i) for i, c in enumerate(_EXECUTION_COLUMNS, start=1)
        )
        query = (
            f"INSERT INTO workflow_executions ({', '.join(_EXECUTION_COLUMNS)}) "
            f"VALUES ({placeholders})"
        )
        return query, [encode_field(c, getattr(execution, c)) for c in _EXECUTION_COLUMNS]

    @staticmethod
    def _row_to_execution(row: asyncpg.Record) -> WorkflowExecution:
        data = {c: row[c] for c in _EXECUTION_COLUMNS}
        for name in JSON_FIELDS:
            data[name] = decode_json(data[name])
        data = {k: v for k, v in data.items() if v is not None}
        return WorkflowExecution.model_validate(data)

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO workflows (id, user_id, definition) VALUES ($1, $2, $3::jsonb)
                ON CONFLICT (id) DO UPDATE SET user_id = EXCLUDED.user_id, definition = EXCLUDED.definition
                """,
                workflow.id,
                workflow.user_id,
                workflow.model_dump_json(by_alias=True),
            )
        finally:
            await conn.close()

    async def get_workflow(
        self, workflow_id: str, user_id: str | None = None
    ) -> Workflow | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT user_id, definition FROM workflows WHERE id = $1", workflow_id
            )
        finally:
            await conn.close()
        if not row or (user_id is not None and row["user_id"] != user_id):
            return None
        return Workflow.model_validate(decode_json(row["definition"]))

    async def create_execution(self, execution: WorkflowExecution) -> None:
        query, params = self._insert_query(execution)
        conn = await self._connect()
        try:
            await conn.execute(query, *params)
        finally:
            await conn.close()

    async def reserve_execution(
        self, execution: WorkflowExecution, limit: int
    ) -> tuple[bool, int]:
        query, params = self._insert_query(execution)
        conn = await self._connect()
        try:
            async with conn.transaction():
                # serializes admissions for one workflow across processes
                await conn.execute(
                    "SELECT pg_advisory_xact_lock(hashtext($1))", execution.workflow_id
                )
                current = await conn.fetchval(
                    "SELECT COUNT(*) FROM workflow_executions WHERE workflow_id = $1 AND status = $2",
                    execution.workflow_id,
                    ExecutionStatus.RUNNING.value,
                )
                if current >= limit:
                    return False, current
                await conn.execute(query, *params)
                return True, current
        finally:
            await conn.close()

    async def count_running(self, workflow_id: str) -> int:
        conn = await self._connect()
        try:
            return await conn.fetchval(
                "SELECT COUNT(*) FROM workflow_executions WHERE workflow_id = $1 AND status = $2",
                workflow_id,
                ExecutionStatus.RUNNING.value,
            )
        finally:
            await conn.close()

    async def update_execution(self, execution_id: str, fields: dict[str, Any]) -> None:
        check_fields(fields)
        if not fields:
            return
        names = list(fields)
        assignments = ", ".join(
            f"{name} = {_placeholder(name, i)}" for i, name in enumerate(names, start=1)
        )
        params = [encode_field(name, fields[name]) for name in names]
        conn = await self._connect()
        try:
            await conn.execute(
                f"UPDATE workflow_executions SET {assignments} WHERE id = ${len(names) + 1}",
                *params,
                execution_id,
            )
        finally:
            await conn.close()

    async def get_execution(
        self, execution_id: str, user_id: str | None = None
    ) -> WorkflowExecution | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(f"{_SELECT_EXECUTION} WHERE id = $1", execution_id)
        finally:
            await conn.close()
        if not row or (user_id is not None and row["user_id"] != user_id):
            return None
        return self._row_to_execution(row)

    async def list_executions(
        self, workflow_id: str, user_id: str | None = None, limit: int = 10
    ) -> list[WorkflowExecution]:
        conn = await self._connect()
        try:
            if user_id is None:
                rows = await conn.fetch(
                    f"{_SELECT_EXECUTION} WHERE workflow_id = $1 ORDER BY started_at DESC LIMIT $2",
                    workflow_id,
                    limit,
                )
            else:
                rows = await conn.fetch(
                    f"{_SELECT_EXECUTION} WHERE workflow_id = $1 AND user_id = $2 "
                    "ORDER BY started_at DESC LIMIT $3",
                    workflow_id,
                    user_id,
                    limit,
                )
        finally:
            await conn.close()
        return [self._row_to_execution(r) for r in rows]
