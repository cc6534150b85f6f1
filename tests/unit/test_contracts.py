import pytest
from pydantic import ValidationError

from autoflow.contracts import (
    ActionConfig,
    ConditionConfig,
    DelayConfig,
    RunHandle,
    Step,
    Workflow,
)
from autoflow.errors import UnknownStepTypeError


def test_workflow_accepts_camel_case_definition():
    wf = Workflow.model_validate(
        {
            "id": "wf-1",
            "userId": "user-1",
            "name": "Onboarding",
            "steps": [{"type": "action", "config": {"actionType": "send_email"}}],
            "maxConcurrentRuns": 3,
            "retryPolicy": {"maxRetries": 2, "backoffMultiplier": 3, "initialDelay": 50},
        }
    )
    assert wf.user_id == "user-1"
    assert wf.max_concurrent_runs == 3
    assert wf.retry_policy.max_retries == 2
    assert wf.retry_policy.initial_delay == 50
    assert wf.enabled is True


def test_workflow_defaults():
    wf = Workflow(id="wf-1", user_id="user-1")
    assert wf.max_concurrent_runs == 1
    assert wf.retry_policy.max_retries == 0
    assert wf.retry_policy.backoff_multiplier == 2.0
    assert wf.retry_policy.initial_delay == 1000


def test_max_concurrent_runs_must_be_positive():
    with pytest.raises(ValidationError):
        Workflow(id="wf-1", user_id="user-1", max_concurrent_runs=0)


def test_step_critical_defaults_and_config_fallback():
    assert Step(type="trigger").critical is True
    assert Step.model_validate({"type": "delay", "config": {"critical": False}}).critical is False
    explicit = Step.model_validate(
        {"type": "delay", "critical": True, "config": {"critical": False}}
    )
    assert explicit.critical is True


def test_typed_config_selects_variant():
    assert isinstance(Step(type="action").typed_config(), ActionConfig)
    assert isinstance(Step(type="condition").typed_config(), ConditionConfig)
    delay = Step(type="delay", config={"delay_ms": 250}).typed_config()
    assert isinstance(delay, DelayConfig)
    assert delay.delay == 250


def test_typed_config_unknown_type():
    with pytest.raises(UnknownStepTypeError):
        Step(type="teleport").typed_config()


def test_run_handle_public_shape():
    handle = RunHandle(execution_id="exec_1")
    assert handle.to_public() == {"executionId": "exec_1", "status": "running"}
