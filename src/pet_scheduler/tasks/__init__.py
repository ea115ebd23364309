"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskExecution, TaskStats, type tags)
- triggers.py / actions.py: typed trigger/action configs, decoded at point of use
- task_store.py: SQLite-backed storage + query/update helpers
- task_executor.py: one execution attempt (record, dispatch, notify)
- task_scheduler.py: polling loop + background runner
- task_api.py: synchronous command surface used by the host
"""
