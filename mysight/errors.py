"""Exception types shared across MySight services."""

from typing import Optional


class MySightError(Exception):
    """Base exception class for MySight."""
    pass


class ImageTooLargeError(MySightError):
    """Raised when an image exceeds the raw or encoded size ceiling."""

    def __init__(self, message: str, size: Optional[float] = None, limit: Optional[int] = None):
        super().__init__(message)
        self.size = size
        self.limit = limit


class ImageDecodeError(MySightError):
    """Raised when uploaded bytes cannot be decoded as an image."""
    pass


class QuotaExceededError(MySightError):
    """Raised by the storage medium when a write exceeds its quota."""
    pass


class CapacityExceededError(MySightError):
    """Raised when the photo collection would exceed the storage ceiling."""

    def __init__(self, message: str, size: Optional[int] = None, limit: Optional[int] = None):
        super().__init__(message)
        self.size = size
        self.limit = limit


class UpstreamError(MySightError):
    """Raised when a remote service answers with a non-success status."""

    def __init__(self, status: int, details: str = ""):
        super().__init__(f"Upstream error {status}: {details}")
        self.status = status
        self.details = details


class ConfigurationError(MySightError):
    """Raised when there's a configuration issue."""
    pass


class PhotoNotFoundError(MySightError):
    """Raised when no photo with the given id exists in the library."""
    pass
