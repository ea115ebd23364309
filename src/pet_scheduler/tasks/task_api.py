# src/pet_scheduler/tasks/task_api.py

from __future__ import annotations

import json
import logging
from typing import Any

from .task_executor import TaskExecutor
from .task_models import Action, ActionType, Task, TaskExecution, TaskStats, Trigger, TriggerType
from .task_store import EXECUTIONS_DEFAULT_LIMIT, TaskStore
from .triggers import validate_trigger

logger = logging.getLogger(__name__)


class SchedulerApi:
    """
    Synchronous command surface used by the host to manage tasks.

    Every call runs on the caller's thread against its own short-lived store
    connection. Errors (TaskNotFoundError, StoreError, ValueError) are raised
    to the caller unchanged.
    """

    def __init__(self, task_store: TaskStore, executor: TaskExecutor) -> None:
        self._store = task_store
        self._executor = executor

    def create_task(
        self,
        *,
        name: str,
        trigger: Trigger,
        action: Action,
        enabled: bool = True,
        description: str | None = None,
        metadata: Any | None = None,
    ) -> str:
        problem = validate_trigger(trigger)
        if problem:
            logger.warning("Creating task %r with a trigger that will never fire: %s", name, problem)
        task_id = self._store.create_task(
            name=name,
            description=description,
            trigger=trigger,
            action=action,
            enabled=enabled,
            metadata=metadata,
        )
        logger.info("Task created id=%s name=%r trigger=%s action=%s", task_id, name, trigger.type, action.type)
        return task_id

    def get_task(self, task_id: str) -> Task:
        return self._store.get_task(task_id)

    def list_tasks(self) -> list[Task]:
        return self._store.list_tasks()

    def update_task(
        self,
        task_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        trigger: Trigger | None = None,
        action: Action | None = None,
        enabled: bool | None = None,
        metadata: Any | None = None,
    ) -> None:
        if trigger is not None:
            problem = validate_trigger(trigger)
            if problem:
                logger.warning("Task %s updated with a trigger that will never fire: %s", task_id, problem)
        self._store.update_task(
            task_id,
            name=name,
            description=description,
            trigger=trigger,
            action=action,
            enabled=enabled,
            metadata=metadata,
        )

    def delete_task(self, task_id: str) -> None:
        self._store.delete_task(task_id)
        logger.info("Task deleted id=%s", task_id)

    def set_enabled(self, task_id: str, enabled: bool) -> None:
        self._store.set_enabled(task_id, enabled)
        logger.info("Task id=%s enabled=%s", task_id, enabled)

    def execute_now(self, task_id: str) -> TaskExecution:
        """
        Run one execution of the task synchronously, regardless of its trigger.

        Raises TaskNotFoundError (and writes nothing) if the task does not exist.
        """
        task = self._store.get_task(task_id)
        return self._executor.execute(task)

    def list_executions(self, task_id: str, limit: int | None = None) -> list[TaskExecution]:
        return self._store.list_executions(
            task_id, limit=EXECUTIONS_DEFAULT_LIMIT if limit is None else limit
        )

    def get_task_stats(self, task_id: str) -> TaskStats:
        return self._store.get_task_stats(task_id)

    def recover_stale_executions(self, *, older_than_ms: int) -> int:
        return self._store.fail_stale_executions(older_than_ms=older_than_ms)


def schedule_notification(
    api: SchedulerApi,
    *,
    title: str,
    body: str,
    every_seconds: int | None = None,
    cron: str | None = None,
    name: str | None = None,
) -> str:
    """
    Convenience helper: schedule a notification task.

    Exactly one of every_seconds / cron may be given; with neither, the task is
    manual (runs only through execute_now).
    """
    if every_seconds is not None and cron is not None:
        raise ValueError("pass either every_seconds or cron, not both")

    if every_seconds is not None:
        trigger = Trigger(
            type=TriggerType.INTERVAL,
            config=json.dumps({"type": "interval", "seconds": int(every_seconds)}),
        )
    elif cron is not None:
        trigger = Trigger(type=TriggerType.CRON, config=json.dumps({"type": "cron", "expression": cron}))
    else:
        trigger = Trigger(type=TriggerType.MANUAL, config=json.dumps({"type": "manual"}))

    action = Action(
        type=ActionType.NOTIFICATION,
        config=json.dumps({"type": "notification", "title": title, "body": body}, ensure_ascii=False),
    )
    return api.create_task(name=name or title, trigger=trigger, action=action, enabled=True)
