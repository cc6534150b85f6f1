from .models import WorkflowStats
from .stats_db import WorkflowStatsDB

__all__ = [
    "WorkflowStats",
    "WorkflowStatsDB",
]
