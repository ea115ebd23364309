# src/pet_scheduler/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class TriggerType(StrEnum):
    INTERVAL = "interval"
    CRON = "cron"
    MANUAL = "manual"
    EVENT = "event"


class ActionType(StrEnum):
    NOTIFICATION = "notification"
    AGENT_TASK = "agent_task"
    WORKFLOW = "workflow"
    SCRIPT = "script"  # reserved, always fails


class ExecutionStatus(StrEnum):
    """
    Execution record status.

    A record is written as RUNNING first and then moved to exactly one
    terminal state (SUCCESS or FAILED).
    """

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"

    @classmethod
    def from_db(cls, raw: str | None) -> ExecutionStatus:
        if not raw:
            return cls.FAILED
        try:
            return cls(raw)
        except ValueError:
            return cls.FAILED

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


@dataclass(slots=True, frozen=True)
class Trigger:
    """When a task fires. `config` is the stored JSON text, decoded at point of use."""

    type: str
    config: str


@dataclass(slots=True, frozen=True)
class Action:
    """What a task does when fired. `config` is the stored JSON text."""

    type: str
    config: str


@dataclass(slots=True)
class Task:
    id: str
    name: str
    description: str | None

    trigger: Trigger
    action: Action

    enabled: bool
    last_run: int | None
    next_run: int | None

    metadata: Any | None
    created_at: int
    updated_at: int | None = None


@dataclass(slots=True)
class TaskExecution:
    id: str
    task_id: str
    status: ExecutionStatus
    started_at: int
    completed_at: int | None = None
    result: str | None = None
    error: str | None = None
    duration: int | None = None


@dataclass(slots=True, frozen=True)
class TaskStats:
    task_id: str
    total_executions: int
    success_count: int
    failure_count: int
    running_count: int
    last_execution_status: ExecutionStatus | None
    average_duration: float | None
