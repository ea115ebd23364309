"""Embedded background task scheduler: SQLite-backed tasks, triggers, actions and execution history."""

__version__ = "0.1.0"
