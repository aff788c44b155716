class TarevityError(Exception):
    """Base class for errors raised by the notification core."""

    def __init__(self, message: str, user_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.user_id = user_id


class RefreshError(TarevityError):
    """A reconciliation pass could not run to completion."""


class TaskFetchError(RefreshError):
    """The task list needed for a reconciliation pass could not be loaded."""


class NotificationWriteError(TarevityError):
    """A user-initiated change to notifications could not be stored."""
