"""Failure types shared by the store gateway, reminder set and scheduler."""


class ReminderError(Exception):
    pass


class StoreUnavailable(ReminderError):
    """A create/fetch/update/delete against the reminder store failed or timed out."""


class ReminderNotFound(StoreUnavailable):
    def __init__(self, reminder_id: str):
        super().__init__(f"Reminder {reminder_id} not found")
        self.reminder_id = reminder_id


class SubscriptionDropped(ReminderError):
    """The live event stream ended without being unsubscribed."""


class PresenterUnavailable(ReminderError):
    """Audio or speech playback failed. Never changes alarm state."""
