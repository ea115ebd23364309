# src/pet_scheduler/connectors/console_connector.py

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from ..cli.commands import registry as command_registry
from ..core.events import TaskEvents
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _fmt_payload(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    try:
        return json.dumps(payload, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(payload)


def attach_console_listeners(state: AppState) -> None:
    """Stand-in host: print the events the scheduler pushes outward."""

    def on_notification(payload: Any) -> None:
        if isinstance(payload, dict):
            _print_ts(f"[NOTIFY] {payload.get('title')}: {payload.get('body')}")
        else:
            _print_ts(f"[NOTIFY] {_fmt_payload(payload)}")

    def on_agent(payload: Any) -> None:
        _print_ts(f"[AGENT] {_fmt_payload(payload)}")

    def on_workflow(payload: Any) -> None:
        _print_ts(f"[WORKFLOW] {_fmt_payload(payload)}")

    def on_failed(payload: Any) -> None:
        _print_ts(f"[FAILED] {_fmt_payload(payload)}")

    state.events.on(TaskEvents.NOTIFICATION, on_notification)
    state.events.on(TaskEvents.AGENT_EXECUTE, on_agent)
    state.events.on(TaskEvents.WORKFLOW_EXECUTE, on_workflow)
    state.events.on(TaskEvents.FAILED, on_failed)


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        _print_ts(text)

    while True:
        try:
            line = input(">>> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            response = command_registry.handle(state, line, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is None:
            response = "Not a command. Use /help to list available commands."
        _print_ts(response)
