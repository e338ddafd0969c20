"""
timelock: personal task manager core.

Subpackages:
- tasks: task models, SQLite task store, time math, mutation service
- reminders: trigger calculation, reconciliation, local notification scheduler
- core: ports (Protocols), errors, application state
- cli: composition root and console entrypoint
"""
