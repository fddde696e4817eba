"""Error types for jira worklog synchronizer.

Every error carries a single human-readable message; ``str(error)`` is what
the command line shows to the user.
"""


class WorklogSyncError(Exception):
    """Base class for all errors raised by this package."""


class NotConfigured(WorklogSyncError):
    """Jira credentials have not been configured yet."""


class RemoteError(WorklogSyncError):
    """A call to the Jira API failed."""


class AuthError(RemoteError):
    """Jira rejected the credentials or the request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ApiError(RemoteError):
    """Jira answered with a non-2xx status other than an auth failure."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(RemoteError):
    """The request never produced an HTTP response."""


class DecodeError(RemoteError):
    """The response body could not be decoded into the expected shape."""


class NotFound(WorklogSyncError):
    """A local entity does not exist."""


class InvalidState(WorklogSyncError):
    """The operation is not valid for the current state."""


class NoActiveTimer(InvalidState):
    def __init__(self) -> None:
        super().__init__("No active timer")


class AlreadyPaused(InvalidState):
    def __init__(self) -> None:
        super().__init__("Timer is already paused")


class NotPaused(InvalidState):
    def __init__(self) -> None:
        super().__init__("Timer is not paused")


class AlreadySynced(InvalidState):
    def __init__(self) -> None:
        super().__init__("Worklog already synced")


class InvalidTimestamp(WorklogSyncError):
    """A stored or supplied value is not a timestamp with a UTC offset."""


class PartialFailure(WorklogSyncError):
    """Some items of a batch operation failed."""

    def __init__(self, message: str, failures: list[str]) -> None:
        super().__init__(message)
        self.failures = failures
