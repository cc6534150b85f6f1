from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class WorkflowStats(SQLModel, table=True):
    """Long-run outcome counters for one workflow."""

    workflow_id: str = Field(primary_key=True)
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    last_run_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
