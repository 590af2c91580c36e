"""Workout tracker exceptions."""


class TrackerError(Exception):
    """Base exception for workout tracker errors."""
    pass


class RemoteUnavailable(TrackerError):
    """Raised when the key-value store cannot be reached."""
    pass


class APIError(RemoteUnavailable):
    """Raised when the key-value store answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFound(TrackerError):
    """Raised when a key has no stored value."""

    def __init__(self, key: str):
        super().__init__(f"No stored value for key {key!r}")
        self.key = key


class ValidationFailure(TrackerError):
    """Raised when user-entered workout data is missing or invalid."""
    pass


class DecodeError(TrackerError):
    """Raised when a stored document does not match the workout model."""
    pass


class InvalidTransition(TrackerError):
    """Raised when an operation is not allowed in the current session phase."""

    def __init__(self, operation: str, phase: str):
        super().__init__(f"Cannot {operation} while in phase {phase!r}")
        self.operation = operation
        self.phase = phase
