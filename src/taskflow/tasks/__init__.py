"""
Task subsystem.

Components:
- task_models.py: data structures (Task, enums, TaskQuery)
- task_store.py: SQLite-backed record store
- dependencies.py: dependency gate for completion
- recurrence.py: next due date for recurring tasks
- notification_policy.py: which reminder applies, through which channels
- task_scheduler.py: recurrence / high-priority / overdue sweeps
- task_api.py: request-side service (ownership checks, gating, listings)
"""
