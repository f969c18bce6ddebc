"""Error taxonomy shared by the API, the stores and the clients.

Both client state machines catch ``SyncError`` at their call boundary and
keep ``message`` as the user-visible error string.
"""
from typing import Optional


class SyncError(Exception):
    """Base class for every presentation sync failure."""

    default_message = "Presentation sync failed"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        self.status_code = status_code
        super().__init__(self.message)


class StateValidationError(SyncError):
    """Malformed write payload. The stored state is left unchanged."""

    default_message = "Invalid state format"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = 400):
        super().__init__(message, status_code)


class StateNotFoundError(SyncError):
    """No record under the requested key (expected at cold start)."""

    default_message = "Presentation state not found"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = 404):
        super().__init__(message, status_code)


class TransportError(SyncError):
    """Network failure, timeout or an unreadable response."""

    default_message = "Connection to server lost"


class UnexpectedServerError(SyncError):
    """5xx, or any unsuccessful envelope not covered above."""

    default_message = "Unexpected server error"
