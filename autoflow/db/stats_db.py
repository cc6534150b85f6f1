from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel

from .models import WorkflowStats

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class WorkflowStatsDB:
    """Statistics sink backed by a SQL database.

    Each terminal signal increments ``total_runs`` and either
    ``successful_runs`` or ``failed_runs`` for the workflow. The increment is
    a single upsert so concurrent signals for one workflow are never lost.
    """

    def __init__(self, database_url: str) -> None:
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def init_db(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            self._initialized = True

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with AsyncSession(self.engine) as session:
            yield session

    async def record_run(self, workflow_id: str, success: bool) -> None:
        if not self._initialized:
            await self.init_db()
        insert = _UPSERT_DIALECTS.get(self.engine.dialect.name)
        if insert is None:
            raise ValueError(f"Unsupported stats database dialect: {self.engine.dialect.name}")

        now = datetime.now(timezone.utc)
        table = WorkflowStats.__table__
        succeeded, failed = int(success), int(not success)
        stmt = insert(table).values(
            workflow_id=workflow_id,
            total_runs=1,
            successful_runs=succeeded,
            failed_runs=failed,
            last_run_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.workflow_id],
            set_={
                "total_runs": table.c.total_runs + 1,
                "successful_runs": table.c.successful_runs + succeeded,
                "failed_runs": table.c.failed_runs + failed,
                "last_run_at": now,
                "updated_at": now,
            },
        )
        async with self.engine.begin() as conn:
            await conn.execute(stmt)

    async def get_stats(self, workflow_id: str) -> WorkflowStats | None:
        if not self._initialized:
            await self.init_db()
        async with self.session() as session:
            return await session.get(WorkflowStats, workflow_id)
