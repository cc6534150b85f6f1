"""Utility functions to load workflow definitions and render executions."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from autoflow.contracts import Workflow
from autoflow.status import ExecutionSummary, ExecutionView


def _load_workflow_file(path: Path) -> Workflow:
    """Parse a YAML or JSON workflow definition file."""
    text = path.read_text()
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text) or {}
    return Workflow.model_validate(data)


def _parse_trigger(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Trigger data must be a JSON object")
    return data


def _format_summary(summary: ExecutionSummary) -> str:
    duration = f"{summary.duration}ms" if summary.duration is not None else "-"
    line = (
        f"{summary.id}\t{summary.status.value}\t"
        f"{summary.current_step}/{summary.total_steps}\t{duration}"
    )
    if summary.error_message:
        line += f"\t{summary.error_message}"
    return line


def _format_execution(view: ExecutionView) -> list[str]:
    lines = [
        f"Execution {view.id}: {view.status.value}",
        f"Workflow: {view.workflow_id}",
        f"Progress: {view.completed_steps}/{view.total_steps} (current step {view.current_step})",
    ]
    if view.error_message:
        lines.append(f"Error: {view.error_message}")
    totals = view.resources_consumed
    lines.append(
        f"Resources: apiCalls={totals.api_calls} cost={totals.cost} "
        f"processingTime={totals.processing_time_ms}ms "
        f"agents={','.join(totals.agents_involved) or '-'}"
    )
    for result in view.step_results:
        state = "ok" if result.success else f"failed ({result.error})"
        lines.append(f"- step {result.step_index + 1} [{result.step_type}]: {state}")
    lines.append("Logs:")
    lines.extend(f"  {line}" for line in view.execution_logs)
    return lines
