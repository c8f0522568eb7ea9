"""
DoseWatch Backend Application Package

Medication and appointment reminders: persistence, durable per-reminder jobs,
the due-window reconciler and email delivery.
"""
