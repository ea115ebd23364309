# src/pet_scheduler/tasks/actions.py

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, StrictInt

from ..core.events import TaskEvents
from .errors import ConfigDecodeError, UnknownActionTypeError, UnsupportedActionError
from .task_models import ActionType
from .triggers import ConfigModel, decode_config


class NotificationActionConfig(ConfigModel):
    type: Literal["notification"] | None = None
    title: str
    body: str
    action_button: str | None = Field(default=None, alias="actionButton")
    action_callback: str | None = Field(default=None, alias="actionCallback")


class AgentTaskActionConfig(ConfigModel):
    type: Literal["agent_task"] | None = None
    prompt: str
    tools_allowed: list[str] | None = Field(default=None, alias="toolsAllowed")
    max_steps: StrictInt | None = Field(default=None, alias="maxSteps")


class WorkflowActionConfig(ConfigModel):
    type: Literal["workflow"] | None = None
    workflow_id: str = Field(alias="workflowId")
    input: dict[str, Any] | None = None


ActionConfig = NotificationActionConfig | AgentTaskActionConfig | WorkflowActionConfig

_ACTION_CONFIGS: dict[str, type[ConfigModel]] = {
    ActionType.NOTIFICATION: NotificationActionConfig,
    ActionType.AGENT_TASK: AgentTaskActionConfig,
    ActionType.WORKFLOW: WorkflowActionConfig,
}

# Host event emitted with the decoded payload, one per dispatchable action type.
ACTION_EVENTS: dict[str, str] = {
    ActionType.NOTIFICATION: TaskEvents.NOTIFICATION,
    ActionType.AGENT_TASK: TaskEvents.AGENT_EXECUTE,
    ActionType.WORKFLOW: TaskEvents.WORKFLOW_EXECUTE,
}


def decode_action_config(action_type: str, raw: Any) -> ActionConfig:
    """
    Decode the stored config of a dispatchable action.

    Raises:
    - UnsupportedActionError for "script" (reserved)
    - UnknownActionTypeError for any other unrecognized tag
    - ConfigDecodeError when the config does not match the type's shape
    """
    if action_type == ActionType.SCRIPT:
        raise UnsupportedActionError(action_type)
    model = _ACTION_CONFIGS.get(action_type)
    if model is None:
        raise UnknownActionTypeError(action_type)
    return decode_config(model, raw, label=f"{action_type} action")


def action_payload(cfg: ActionConfig) -> dict[str, Any]:
    """Payload pushed to the host and recorded as the execution result (camelCase keys)."""
    if isinstance(cfg, NotificationActionConfig):
        return {
            "title": cfg.title,
            "body": cfg.body,
            "actionButton": cfg.action_button,
            "actionCallback": cfg.action_callback,
        }
    if isinstance(cfg, AgentTaskActionConfig):
        return {
            "prompt": cfg.prompt,
            "toolsAllowed": cfg.tools_allowed,
            "maxSteps": cfg.max_steps,
        }
    if isinstance(cfg, WorkflowActionConfig):
        return {
            "workflowId": cfg.workflow_id,
            "input": cfg.input,
        }
    raise ConfigDecodeError(f"no payload for config {type(cfg).__name__}")
