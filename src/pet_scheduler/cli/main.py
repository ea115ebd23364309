# src/pet_scheduler/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then:
- starts the scheduler loop in its background thread,
- runs the console REPL in the main thread (optional),
- otherwise waits for SIGINT/SIGTERM.
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..core.state import AppState
from ..config import get_settings
from ..connectors.console_connector import attach_console_listeners, run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        state.runner.stop()
        state.runner.join(timeout=10.0)
    except Exception:
        logger.exception("Failed to stop scheduler runner.")
    # TaskStore uses short-lived sqlite connections per call; no explicit close required.


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/pet-scheduler")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "pet-scheduler"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)
    attach_console_listeners(state)
    state.runner.start()

    # Use an Event so main can wait without a busy while-loop.
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError, AttributeError):
        # Not in the main thread, or SIGTERM unsupported on this platform.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running scheduler only. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
