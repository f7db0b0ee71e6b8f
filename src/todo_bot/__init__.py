"""Slack /todo bot: task lifecycle, role-based views and reminders."""

__version__ = "0.1.0"
