# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file,
see pet_scheduler/config.py). Variables already set in the environment win over .env.

This file exists to make the repo self-documenting even without opening config.py.
"""

ENV_VARS = {
    # App / logging
    "PETSCHED_APP_NAME": "App display name used in log lines (default: pet-scheduler).",
    "PETSCHED_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Connectors
    "PETSCHED_CONSOLE_ENABLED": (
        "Run the interactive slash-command console (true/false, default: true). "
        "When false the process only runs the scheduler until SIGINT/SIGTERM."
    ),
    # Paths (gitignored)
    "PETSCHED_DATA_DIR": "Local data directory, also holds scheduler.log (default: .local/pet-scheduler).",
    "PETSCHED_TASKS_DB_PATH": "Task SQLite database path (default: <data_dir>/pet.db).",
    # Scheduler tuning
    "PETSCHED_TICK_INTERVAL_MS": "Sleep between scheduler ticks in ms (default: 1000, minimum: 10).",
    "PETSCHED_DUE_BATCH_LIMIT": "Max due tasks executed per tick (1..20, default: 20).",
    "PETSCHED_STALE_EXECUTION_MS": (
        "On startup, executions left 'running' for longer than this are marked failed "
        "(default: 300000 = 5 minutes)."
    ),
}
