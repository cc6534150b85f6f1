from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


class EngineConfig(BaseModel):
    """Execution engine tuning knobs."""

    step_timeout: Optional[float] = Field(
        default=300.0, description="Default per-step timeout in seconds"
    )
    duration_basis: Literal["workflow_created", "started"] = "workflow_created"
    store_write_retries: int = Field(default=3, ge=0)
    recent_executions_limit: int = Field(default=10, ge=1)


class AutoflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    stats_database_url: Optional[str] = None
    engine: EngineConfig = EngineConfig()


def load_config(path: Optional[str] = None) -> AutoflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to AUTOFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("AUTOFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = AutoflowConfig(**data)
    else:
        config = AutoflowConfig()

    env_db_url = os.getenv("AUTOFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_stats_url = os.getenv("AUTOFLOW_STATS_DATABASE_URL")
    if env_stats_url:
        config.stats_database_url = env_stats_url
    return config
