"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskDraft, TaskPatch, ReminderPayload)
- task_store.py: SQLite-backed storage
- time_math.py: remaining time / progress / urgency helpers
- task_service.py: create/update/toggle/delete with reminder reconciliation
"""
