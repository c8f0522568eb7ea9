"""Reminder engine (API, durable job scheduler, due-window scanner, Celery triggers).

Reminders are stored with their next fire time. A persistent job per occurrence
and a periodic window scan both hand due reminders to the same processor,
which sends one email per occurrence and advances or closes the reminder.
"""
