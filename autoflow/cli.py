"""Command line interface for running and inspecting autoflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from autoflow import StatusQueryService, WorkflowDispatcher, get_store
from autoflow.cli_utils.workflow import (
    _format_execution,
    _format_summary,
    _load_workflow_file,
    _parse_trigger,
)
from autoflow.config import load_config
from autoflow.errors import AdmissionError, ConcurrencyLimitReached

app = typer.Typer(help="CLI for autoflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflows")
execution_app = typer.Typer(help="Commands for inspecting executions")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Logging level for engine output"),
) -> None:
    """autoflow CLI entry point."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@workflow_app.command("register")
def workflow_register(path: Path) -> None:
    """
    Store a workflow definition from a YAML or JSON file.

    Example:
        autoflow workflow register ./workflows/onboarding.yaml
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        workflow = _load_workflow_file(path)
    except (ValidationError, ValueError) as exc:
        typer.secho(f"Invalid workflow definition: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    store = get_store()
    asyncio.run(store.save_workflow(workflow))
    typer.echo(f"Registered workflow {workflow.id} ({len(workflow.steps)} steps)")


@workflow_app.command("run")
def workflow_run(
    workflow_id: str,
    user: str = typer.Option(..., "--user", help="Authenticated user id"),
    trigger: Optional[str] = typer.Option(None, help="Trigger data as a JSON object"),
    test_mode: bool = typer.Option(False, "--test-mode", help="Skip delays, allow disabled"),
) -> None:
    """
    Start a workflow run and wait for it to finish.

    Prints the execution id as soon as the run is admitted, then the
    terminal status once every step has been processed.

    Example:
        autoflow workflow run wf-123 --user u-1 --trigger '{"lead": 42}'
        # Output: Execution started: exec_1718000000000_k3j2h1g0f
        #         Execution exec_1718000000000_k3j2h1g0f: completed
    """
    try:
        trigger_data = _parse_trigger(trigger)
    except ValueError as exc:
        typer.secho(f"Invalid trigger data: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    dispatcher = WorkflowDispatcher(store=get_store(), config=load_config())

    async def _run():
        handle = await dispatcher.start_run(workflow_id, user, trigger_data, test_mode)
        typer.echo(f"Execution started: {handle.execution_id}")
        return await dispatcher.wait(handle.execution_id)

    try:
        execution = asyncio.run(_run())
    except ConcurrencyLimitReached as exc:
        typer.secho(
            f"Maximum concurrent executions reached (current={exc.current}, limit={exc.limit})",
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)
    except AdmissionError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"Execution {execution.id}: {execution.status.value}")
    if execution.error_message:
        typer.echo(f"Error: {execution.error_message}")


@execution_app.command("show")
def execution_show(
    execution_id: str,
    user: str = typer.Option(..., "--user", help="Authenticated user id"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw projection"),
) -> None:
    """
    Show detailed information for a specific execution.

    Example:
        autoflow execution show exec_1718000000000_k3j2h1g0f --user u-1
    """
    service = StatusQueryService(get_store())
    view = asyncio.run(service.get_execution(execution_id, user))
    if view is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    if as_json:
        typer.echo(json.dumps(view.to_public(), indent=2))
        return
    for line in _format_execution(view):
        typer.echo(line)


@execution_app.command("list")
def execution_list(
    workflow_id: str,
    user: str = typer.Option(..., "--user", help="Authenticated user id"),
) -> None:
    """
    List the most recent executions of a workflow (newest first, at most 10).

    Example:
        autoflow execution list wf-123 --user u-1
        # Output: exec_1718000000000_k3j2h1g0f    completed    3/3    1520ms
    """
    limit = load_config().engine.recent_executions_limit
    service = StatusQueryService(get_store(), recent_limit=limit)
    summaries = asyncio.run(service.list_recent(workflow_id, user))
    if not summaries:
        typer.echo("No executions found")
        return
    for summary in summaries:
        typer.echo(_format_summary(summary))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
