"""
Error taxonomy for Retouch Studio.

Every failure that should be shown to the user derives from StudioError so the
editor session can catch it at the operation boundary and keep running.
Programming errors (bad arguments) still raise ValueError/TypeError.
"""


class StudioError(Exception):
    """Base class for all user-facing editing failures."""


class ValidationError(StudioError):
    """Raised before any remote call when the edit request is incomplete."""


class RemoteError(StudioError):
    """The remote model answered but did not produce a usable result."""


class RemoteBlockError(RemoteError):
    """The request was blocked or generation stopped for a non-STOP reason."""

    def __init__(self, message: str, reason: str = ""):
        super().__init__(message)
        self.reason = reason


class RemoteEmptyResultError(RemoteError):
    """The response contained no image part."""

    def __init__(self, message: str, text_feedback: str = ""):
        super().__init__(message)
        self.text_feedback = text_feedback


class NetworkError(StudioError):
    """The proxy was unreachable or answered with a non-2xx status."""

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class CompositeFailure(StudioError):
    """Every variant of a fan-out operation failed."""

    def __init__(self, message: str, failures=None):
        super().__init__(message)
        self.failures = list(failures or [])


class UpgradeRequiredError(StudioError):
    """The entitlement pre-check blocked the operation."""

    def __init__(self, title: str, message: str):
        super().__init__(message)
        self.title = title


class BusyError(StudioError):
    """Another primary edit is still in flight."""


class StaleResultError(StudioError):
    """A result arrived after the user moved on to another state or upload."""


class HistoryError(StudioError):
    """Invalid history navigation or commit."""


class LayerNotFoundError(StudioError):
    """No layer with the requested id exists in the current state."""


class BitmapReleasedError(StudioError):
    """A released bitmap was accessed."""
