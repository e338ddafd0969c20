"""
Reminder subsystem.

Components:
- triggers.py: offsets -> absolute trigger times
- reconciler.py: keeps scheduled notifications in line with task state
- local_scheduler.py: SQLite-backed notification queue, delivery policy, dispatcher loop
"""
