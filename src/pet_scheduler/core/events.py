# src/pet_scheduler/core/events.py

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]


class TaskEvents:
    """Event names pushed to the host."""

    STARTED = "task_started"
    COMPLETED = "task_completed"
    FAILED = "task_failed"

    NOTIFICATION = "task_notification"
    AGENT_EXECUTE = "task_agent_execute"
    WORKFLOW_EXECUTE = "task_workflow_execute"


class EventHub:
    """
    In-process event channel (implements the EventSink port).

    Handlers run synchronously on the emitting thread. A failing handler is
    logged and does not affect other handlers or the emitter.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._lock = threading.Lock()

    def on(self, event: str, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.setdefault(event, [])
            if handler not in handlers:
                handlers.append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.get(event)
            if handlers and handler in handlers:
                handlers.remove(handler)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def emit(self, event: str, payload: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event, ()))
        if not handlers:
            logger.debug("event %s dropped (no handlers)", event)
            return
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Error in %s handler", event)
