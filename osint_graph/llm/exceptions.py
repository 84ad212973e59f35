"""Exceptions raised across the extraction pathway."""


class OsintGraphError(Exception):
    """Base exception for this package."""
    pass


class InputValidationError(OsintGraphError):
    """Raised when input cannot be submitted for extraction."""
    pass


class UnsupportedTaskTypeError(InputValidationError):
    """Raised when a task reaches a handler for a different task type."""
    pass


class BackendError(OsintGraphError):
    """Raised on network failure, non-2xx response or empty content."""
    pass


class MalformedResponseError(BackendError):
    """Raised when the response is not the expected entities/relationships JSON."""
    pass
