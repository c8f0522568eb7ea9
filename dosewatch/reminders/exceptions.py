class ReminderError(Exception):
    """Base class for per-reminder processing failures."""

    def __init__(self, reminder_id, reason: str):
        super().__init__(f"reminder {reminder_id}: {reason}")
        self.reminder_id = reminder_id
        self.reason = reason


class RecipientNotFound(ReminderError):
    """The owner has no usable email address."""


class DeliveryFailed(ReminderError):
    """The notification gateway rejected or could not deliver the message."""


class ReminderAlreadySent(ReminderError):
    """Edits are refused while ``sent`` is set: during an in-flight claim or after the last send."""


class NoDosesLeft(ReminderError):
    """A reminder without remaining stock cannot be reopened."""
