"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, Recurrence, ViewTab)
- task_store.py: SQLite-backed storage + query/update helpers
- task_service.py: lifecycle manager (create/update/complete/delete, views, search)
- task_parser.py: tokenizer for `/todo add` free text
- schedule.py: due dates, reminder presets and recurrence math
- reminder_dispatcher.py: polling loop that delivers due reminders
"""
