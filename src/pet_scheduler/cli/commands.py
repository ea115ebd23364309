# src/pet_scheduler/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from ..core.state import AppState
from ..tasks.errors import SchedulerError, TaskNotFoundError
from ..tasks.task_api import schedule_notification
from ..tasks.task_models import Task

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], str]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str, emit: CommandEmitter | None = None) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return handler(state, args, emit)
        except TaskNotFoundError as e:
            return f"No such task: {e.task_id}"
        except SchedulerError as e:
            logger.warning("/%s failed: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ms(ms: int | None) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000.0).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _task_line(task: Task) -> str:
    flag = "on " if task.enabled else "off"
    return (
        f"[{flag}] {task.id}  {task.name}  "
        f"({task.trigger.type} -> {task.action.type}, next: {_fmt_ms(task.next_run)})"
    )


def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_tasks(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    tasks = state.api.list_tasks()
    if not tasks:
        return "No tasks."
    return "\n".join(_task_line(t) for t in tasks)


def cmd_show(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /show <task_id>"
    t = state.api.get_task(args[0])
    return (
        f"Task {t.id}\n"
        f"  name: {t.name}\n"
        f"  description: {t.description or '-'}\n"
        f"  trigger: {t.trigger.type} {t.trigger.config}\n"
        f"  action: {t.action.type} {t.action.config}\n"
        f"  enabled: {t.enabled}\n"
        f"  last run: {_fmt_ms(t.last_run)}\n"
        f"  next run: {_fmt_ms(t.next_run)}\n"
        f"  created: {_fmt_ms(t.created_at)}  updated: {_fmt_ms(t.updated_at)}"
    )


def cmd_run(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /run <task_id>"
    execution = state.api.execute_now(args[0])
    if execution.error:
        return f"Run {execution.id}: {execution.status} ({execution.error})"
    return f"Run {execution.id}: {execution.status} in {execution.duration} ms"


def _set_enabled(state: AppState, args: list[str], enabled: bool) -> str:
    if not args:
        return f"Usage: /{'enable' if enabled else 'disable'} <task_id>"
    state.api.set_enabled(args[0], enabled)
    t = state.api.get_task(args[0])
    return _task_line(t)


def cmd_enable(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return _set_enabled(state, args, True)


def cmd_disable(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return _set_enabled(state, args, False)


def cmd_delete(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /delete <task_id>"
    state.api.delete_task(args[0])
    return f"Deleted {args[0]}."


def cmd_history(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /history <task_id>          -> last 10 executions
    /history <task_id> <limit>  -> last <limit> executions (1..200)
    """
    if not args:
        return "Usage: /history <task_id> [limit]"
    limit = 10
    if len(args) > 1:
        try:
            limit = int(args[1])
        except ValueError:
            return "Limit must be a number."
    executions = state.api.list_executions(args[0], limit=limit)
    if not executions:
        return f"No executions for {args[0]}."
    lines = [f"Executions of {args[0]} (most recent first):"]
    for e in executions:
        tail = f" error={e.error}" if e.error else ""
        lines.append(f"  {_fmt_ms(e.started_at)}  {e.status:<7}  {e.duration if e.duration is not None else '-'} ms{tail}")
    return "\n".join(lines)


def cmd_stats(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /stats <task_id>"
    s = state.api.get_task_stats(args[0])
    avg = f"{s.average_duration:.1f} ms" if s.average_duration is not None else "-"
    return (
        f"Stats for {s.task_id}:\n"
        f"  executions: {s.total_executions} (ok {s.success_count}, failed {s.failure_count}, "
        f"running {s.running_count})\n"
        f"  last status: {s.last_execution_status or '-'}\n"
        f"  average duration: {avg}"
    )


def cmd_remind(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/remind <seconds> <title> [body...] -> repeating notification task."""
    if len(args) < 2:
        return "Usage: /remind <seconds> <title> [body]"
    try:
        seconds = int(args[0])
    except ValueError:
        return "Seconds must be a number."
    if seconds <= 0:
        return "Seconds must be positive."
    title = args[1]
    body = " ".join(args[2:]) or title
    task_id = schedule_notification(state.api, title=title, body=body, every_seconds=seconds)
    return f"Created {task_id}: every {seconds}s -> {title!r}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("tasks", cmd_tasks, help_text="List all tasks (newest first).", aliases=["ls"])
registry.register("show", cmd_show, help_text="Show one task: /show <id>.")
registry.register("run", cmd_run, help_text="Execute a task now: /run <id>.")
registry.register("enable", cmd_enable, help_text="Enable a task: /enable <id>.")
registry.register("disable", cmd_disable, help_text="Disable a task: /disable <id>.")
registry.register("delete", cmd_delete, help_text="Delete a task and its history: /delete <id>.", aliases=["rm"])
registry.register("history", cmd_history, help_text="Execution history: /history <id> [limit].")
registry.register("stats", cmd_stats, help_text="Execution stats: /stats <id>.")
registry.register("remind", cmd_remind, help_text="Repeating notification: /remind <seconds> <title> [body].")
