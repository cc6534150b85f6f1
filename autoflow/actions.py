"""Pluggable executors that perform the real side effect of a step.

An executor is any async callable ``(config, context) -> dict``. ``config``
is the step's typed configuration and ``context`` carries the trigger data
and the results of prior steps. The engine is agnostic to what an executor
does; it only records the returned payload.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel, Field

from .contracts import ActionConfig, AgentConfig

logger = logging.getLogger(__name__)


class StepContext(BaseModel):
    """Data visible to a step while it executes."""

    execution_id: Optional[str] = None
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    prior_results: list[Dict[str, Any]] = Field(default_factory=list)
    test_mode: bool = False

    def as_lookup(self) -> dict[str, Any]:
        return {"trigger": self.trigger_data, "steps": self.prior_results}


ActionConfigT = Union[ActionConfig, AgentConfig]
ActionExecutor = Callable[[ActionConfigT, StepContext], Awaitable[Dict[str, Any]]]


async def simulated_action(config: ActionConfig, context: StepContext) -> Dict[str, Any]:
    """Default executor for ``action`` steps with no registered handler."""
    return {
        "actionType": config.action_type,
        "result": f"Action {config.action_type} executed successfully",
    }


async def simulated_agent(config: AgentConfig, context: StepContext) -> Dict[str, Any]:
    """Default executor for ``agent`` steps with no registered handler."""
    return {
        "agentId": config.agent_id,
        "task": config.task,
        "result": f"Agent {config.agent_id} completed task successfully",
    }


class ActionRegistry:
    """Maps action types and agent ids to executors."""

    def __init__(
        self,
        default_action: ActionExecutor = simulated_action,
        default_agent: ActionExecutor = simulated_agent,
    ) -> None:
        self._actions: Dict[str, ActionExecutor] = {}
        self._agents: Dict[str, ActionExecutor] = {}
        self._default_action = default_action
        self._default_agent = default_agent

    def register_action(self, action_type: str, executor: ActionExecutor) -> None:
        self._actions[action_type] = executor

    def register_agent(self, agent_id: str, executor: ActionExecutor) -> None:
        self._agents[agent_id] = executor

    def action(self, action_type: str) -> Callable[[ActionExecutor], ActionExecutor]:
        """Decorator form of :meth:`register_action`."""

        def decorator(fn: ActionExecutor) -> ActionExecutor:
            self.register_action(action_type, fn)
            return fn

        return decorator

    def agent(self, agent_id: str) -> Callable[[ActionExecutor], ActionExecutor]:
        """Decorator form of :meth:`register_agent`."""

        def decorator(fn: ActionExecutor) -> ActionExecutor:
            self.register_agent(agent_id, fn)
            return fn

        return decorator

    def resolve_action(self, action_type: str) -> ActionExecutor:
        executor = self._actions.get(action_type)
        if executor is None:
            logger.debug(f"No executor for action '{action_type}', using default")
            return self._default_action
        return executor

    def resolve_agent(self, agent_id: str) -> ActionExecutor:
        executor = self._agents.get(agent_id)
        if executor is None:
            logger.debug(f"No executor for agent '{agent_id}', using default")
            return self._default_agent
        return executor
