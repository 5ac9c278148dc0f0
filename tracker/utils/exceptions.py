"""
Custom exceptions for the profile sync core with user-friendly error messages.
"""

from typing import Optional


class TrackerException(Exception):
    """Base exception for tracker errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


# Remote fetch failures

class NetworkError(TrackerException):
    """Raised when the remote service is unreachable."""
    cause = "network"

    def __init__(self, details: str = None, user_message: str = None):
        super().__init__(
            f"Network error: {details}" if details else "Network error",
            user_message or "❌ Could not reach the server. Check your connection and try again."
        )


class FetchTimeoutError(NetworkError):
    """Raised when a bounded fetch does not finish in time."""
    cause = "timeout"

    def __init__(self, timeout: float):
        super().__init__(
            f"request timed out after {timeout:g}s",
            "⏰ The request timed out. Please try again."
        )
        self.timeout = timeout


class FetchCancelledError(NetworkError):
    """Raised when the fetch task was cancelled before completing."""
    cause = "cancelled"

    def __init__(self):
        super().__init__(
            "request was cancelled",
            "The request was cancelled."
        )


class ServerError(TrackerException):
    """Raised when the remote service answers with a non-2xx status."""
    def __init__(self, code: int, message: str = None):
        super().__init__(
            f"Server error {code}: {message}" if message else f"Server error {code}",
            f"❌ Server error ({code}). Please try again later."
        )
        self.code = code
        self.server_message = message


class PlayerNotFoundError(TrackerException):
    """Raised when the remote service has no player for a tag."""
    def __init__(self, tag: str):
        super().__init__(
            f"Player '{tag}' not found",
            "❌ Player not found. Please check the tag and try again."
        )
        self.tag = tag


class DecodeError(TrackerException):
    """Raised when a payload cannot be decoded into a snapshot."""
    def __init__(self, details: str):
        super().__init__(
            f"Failed to decode payload: {details}",
            "❌ Failed to decode response. The server may have sent incomplete data."
        )


# Local failures

class StoreError(TrackerException):
    """Raised when a persistence operation fails."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Store error during {operation}: {details}",
            "❌ Failed to save profile data. Please try again later."
        )
        self.operation = operation


class ConcurrencyError(TrackerException):
    """Raised when an exclusive operation is already running."""
    pass


class RefreshInProgressError(ConcurrencyError):
    """Raised when a profile refresh is already in flight."""
    def __init__(self):
        super().__init__(
            "Profile refresh already in progress",
            "A refresh is already in progress."
        )


class ValidationError(TrackerException):
    """Raised when user input fails validation."""
    pass


class BadTagError(ValidationError):
    """Raised when a player tag is malformed."""
    def __init__(self, tag: str, reason: str = None):
        super().__init__(
            f"Invalid player tag '{tag}': {reason or 'malformed'}",
            "❌ Please enter a valid player tag."
        )
        self.tag = tag


class NoProfileDataError(TrackerException):
    """Raised when an operation needs a loaded profile and none is loaded."""
    def __init__(self):
        super().__init__(
            "No profile data loaded",
            "No profile loaded to refresh."
        )


# Operation results surfaced to the UI

class ErrorCause:
    """Cause tags attached to operation errors."""
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    NETWORK = "network"
    STORE = "store"
    NOT_FOUND = "not_found"
    INVALID_TAG = "invalid_tag"


def cause_for(error: Exception) -> str:
    """Map a low-level failure onto an operation error cause."""
    if isinstance(error, FetchTimeoutError):
        return ErrorCause.TIMEOUT
    if isinstance(error, FetchCancelledError):
        return ErrorCause.CANCELLED
    if isinstance(error, StoreError):
        return ErrorCause.STORE
    if isinstance(error, PlayerNotFoundError):
        return ErrorCause.NOT_FOUND
    if isinstance(error, ValidationError):
        return ErrorCause.INVALID_TAG
    return ErrorCause.NETWORK


class ProfileOperationError(TrackerException):
    """Base for errors raised by user-triggered profile operations."""
    action = "complete the operation"

    def __init__(self, cause: str, details: str = None, error: Optional[Exception] = None):
        self.cause = cause
        self.error = error
        super().__init__(
            f"Failed to {self.action} ({cause}): {details}",
            self._build_user_message(cause, details, error)
        )

    @classmethod
    def from_error(cls, error: Exception):
        return cls(cause_for(error), str(error), error)

    def _build_user_message(self, cause, details, error):
        if cause == ErrorCause.TIMEOUT:
            return f"⏰ Timed out while trying to {self.action}. Please try again."
        if cause == ErrorCause.CANCELLED:
            return f"The request to {self.action} was cancelled."
        if isinstance(error, TrackerException):
            return error.user_message
        return f"❌ Failed to {self.action}: {details}"


class RefreshError(ProfileOperationError):
    action = "refresh profile"


class SaveError(ProfileOperationError):
    action = "save profile"


class RemoveError(ProfileOperationError):
    action = "remove profile"


class SearchError(ProfileOperationError):
    action = "search player"
