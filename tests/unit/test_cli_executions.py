import asyncio
import json
import re

import yaml
from typer.testing import CliRunner

import autoflow.persistence as persistence
from autoflow.cli import app
from autoflow.persistence import InMemoryExecutionStore, WorkflowExecution

WORKFLOW = {
    "id": "wf-cli",
    "userId": "user-1",
    "name": "CLI workflow",
    "steps": [
        {"type": "trigger"},
        {"type": "action", "config": {"actionType": "send_email"}},
        {"type": "delay", "config": {"delay": 5000}},
    ],
}


def _setup_store() -> InMemoryExecutionStore:
    store = InMemoryExecutionStore()
    persistence._store_instance = store
    return store


def _register(runner: CliRunner, tmp_path, definition=None) -> None:
    path = tmp_path / "workflow.yaml"
    path.write_text(yaml.safe_dump(definition or WORKFLOW))
    result = runner.invoke(app, ["workflow", "register", str(path)])
    assert result.exit_code == 0, result.stdout
    assert "Registered workflow wf-cli (3 steps)" in result.stdout


def test_run_show_and_list(tmp_path):
    _setup_store()
    runner = CliRunner()
    _register(runner, tmp_path)

    args = ["workflow", "run", "wf-cli", "--user", "user-1", "--trigger", '{"lead": 3}']
    result = runner.invoke(app, args + ["--test-mode"])
    assert result.exit_code == 0, result.stdout
    match = re.search(r"Execution started: (exec_\S+)", result.stdout)
    assert match, result.stdout
    execution_id = match.group(1)
    assert f"Execution {execution_id}: completed" in result.stdout

    result = runner.invoke(app, ["execution", "show", execution_id, "--user", "user-1"])
    assert result.exit_code == 0, result.stdout
    assert f"Execution {execution_id}: completed" in result.stdout
    assert "Progress: 3/3" in result.stdout
    assert "Starting step 2: action" in result.stdout

    result = runner.invoke(
        app, ["execution", "show", execution_id, "--user", "user-1", "--json"]
    )
    assert result.exit_code == 0, result.stdout
    data = json.loads(result.stdout)
    assert data["status"] == "completed"
    assert data["triggerData"] == {"lead": 3}

    result = runner.invoke(app, ["execution", "list", "wf-cli", "--user", "user-1"])
    assert result.exit_code == 0, result.stdout
    assert execution_id in result.stdout
    assert "completed" in result.stdout


def test_show_missing_execution():
    _setup_store()
    runner = CliRunner()
    result = runner.invoke(app, ["execution", "show", "exec_missing", "--user", "user-1"])
    assert result.exit_code == 1
    assert "Execution not found" in result.stdout


def test_list_without_executions():
    _setup_store()
    runner = CliRunner()
    result = runner.invoke(app, ["execution", "list", "wf-cli", "--user", "user-1"])
    assert result.exit_code == 0
    assert "No executions found" in result.stdout


def test_run_unknown_workflow():
    _setup_store()
    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "run", "wf-missing", "--user", "user-1"])
    assert result.exit_code == 1
    assert "Workflow not found: wf-missing" in result.stdout


def test_run_rejected_at_concurrency_limit(tmp_path):
    store = _setup_store()
    runner = CliRunner()
    _register(runner, tmp_path)

    workflow = asyncio.run(store.get_workflow("wf-cli"))
    asyncio.run(store.create_execution(WorkflowExecution.start(workflow, "user-1")))

    result = runner.invoke(app, ["workflow", "run", "wf-cli", "--user", "user-1"])
    assert result.exit_code == 1
    assert "Maximum concurrent executions reached (current=1, limit=1)" in result.stdout


def test_run_failed_workflow_reports_error(tmp_path):
    _setup_store()
    runner = CliRunner()
    steps = [{"type": "teleport"}, {"type": "trigger"}, {"type": "trigger"}]
    definition = {**WORKFLOW, "steps": steps}
    _register(runner, tmp_path, definition)

    result = runner.invoke(app, ["workflow", "run", "wf-cli", "--user", "user-1"])
    assert result.exit_code == 0, result.stdout
    assert ": failed" in result.stdout
    assert "Error: Unknown step type: teleport" in result.stdout


def test_invalid_inputs(tmp_path):
    _setup_store()
    runner = CliRunner()

    result = runner.invoke(app, ["workflow", "register", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1
    assert "Specified path does not exist" in result.stdout

    bad = tmp_path / "bad.yaml"
    bad.write_text("name: missing id\n")
    result = runner.invoke(app, ["workflow", "register", str(bad)])
    assert result.exit_code == 1
    assert "Invalid workflow definition" in result.stdout

    result = runner.invoke(
        app, ["workflow", "run", "wf-cli", "--user", "user-1", "--trigger", "[1, 2]"]
    )
    assert result.exit_code == 1
    assert "Invalid trigger data" in result.stdout
