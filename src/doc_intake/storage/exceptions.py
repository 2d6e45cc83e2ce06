"""Storage-specific exceptions."""

from __future__ import annotations


__all__ = [
    "LocationMissingError",
    "StorageError",
    "StorageRelocationError",
]


class StorageError(Exception):
    """Base exception for blob storage failures.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            cause: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        """Return string representation."""
        return self.message


class StorageRelocationError(StorageError):
    """Raised when copying or deleting during a relocation fails.

    Attributes:
        location: Location the operation was acting on.
        key: Object key.
    """

    def __init__(
        self,
        message: str,
        *,
        location: str,
        key: str,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            location: Location the operation was acting on.
            key: Object key.
            cause: The underlying exception that caused this error.
        """
        super().__init__(message, cause=cause)
        self.location = location
        self.key = key

    def __str__(self) -> str:
        """Return string representation with the object address."""
        return f"{self.message} ({self.location}/{self.key})"


class LocationMissingError(StorageError):
    """Raised when a write targets a location that does not exist.

    Attributes:
        location: The missing location.
    """

    def __init__(
        self,
        location: str,
        *,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            location: The missing location.
            cause: The underlying exception that caused this error.
        """
        super().__init__(f"Location does not exist: {location}", cause=cause)
        self.location = location
