"""Exceptions raised by the document-understanding client."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    import httpx


__all__ = [
    "CapabilityAuthenticationError",
    "CapabilityConnectionError",
    "CapabilityInvocationError",
    "CapabilityNotFoundError",
    "CapabilityRateLimitError",
    "CapabilityServerError",
    "CapabilityValidationError",
    "OperationFailedError",
    "OperationTimeoutError",
]


class CapabilityInvocationError(Exception):
    """Base exception for classifier and OCR invocation failures.

    Attributes:
        message: Human-readable error description.
        response: The HTTP response that caused this error, if available.
    """

    def __init__(
        self,
        message: str,
        *,
        response: httpx.Response | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            response: The HTTP response that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.response = response

    def __str__(self) -> str:
        """Return string representation with status code if available."""
        if self.response is not None:
            return f"{self.message} (status={self.response.status_code})"
        return self.message

    def response_details(self) -> dict[str, Any] | None:
        """Return the status and body of the embedded response, if any."""
        if self.response is None:
            return None
        try:
            body: Any = self.response.json()
        except Exception:  # noqa: BLE001
            body = self.response.text
        return {"status": self.response.status_code, "body": body}


class CapabilityConnectionError(CapabilityInvocationError):
    """Raised when the service cannot be reached.

    Includes network errors, DNS failures, and timeouts.
    """

    def __init__(
        self,
        message: str = "Failed to connect to document-understanding service",
        *,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error description.
            cause: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.__cause__ = cause


class CapabilityAuthenticationError(CapabilityInvocationError):
    """Raised for authentication failures (401/403)."""


class CapabilityNotFoundError(CapabilityInvocationError):
    """Raised when a model or operation is not found (404)."""


class CapabilityRateLimitError(CapabilityInvocationError):
    """Raised when rate limited (429) after retries are exhausted.

    Attributes:
        retry_after: Number of seconds to wait before retrying, if provided.
    """

    def __init__(
        self,
        message: str = "Rate limited by document-understanding service",
        *,
        retry_after: float | None = None,
        response: httpx.Response | None = None,
    ) -> None:
        """Initialize the rate limit error.

        Args:
            message: Human-readable error description.
            retry_after: Seconds to wait before retrying.
            response: The HTTP response that caused this error.
        """
        super().__init__(message, response=response)
        self.retry_after = retry_after


class CapabilityServerError(CapabilityInvocationError):
    """Raised for server errors (5xx) after retries are exhausted."""


class CapabilityValidationError(CapabilityInvocationError):
    """Raised for rejected requests (400), e.g. unsupported content.

    Attributes:
        error: The service's error object, if the body carried one.
    """

    def __init__(
        self,
        message: str,
        *,
        error: dict[str, Any] | None = None,
        response: httpx.Response | None = None,
    ) -> None:
        """Initialize the validation error.

        Args:
            message: Human-readable error description.
            error: The service's error object.
            response: The HTTP response that caused this error.
        """
        super().__init__(message, response=response)
        self.error = error or {}


class OperationFailedError(CapabilityInvocationError):
    """Raised when a long-running operation ends in a failed state.

    Attributes:
        operation_url: URL of the operation that failed.
        status: Terminal status reported by the service.
        error: The service's error object.
    """

    def __init__(
        self,
        operation_url: str,
        *,
        status: str,
        error: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            operation_url: URL of the operation that failed.
            status: Terminal status reported by the service.
            error: The service's error object.
        """
        self.operation_url = operation_url
        self.status = status
        self.error = error or {}
        detail = self.error.get("message") or self.error.get("code") or "no detail"
        super().__init__(f"Operation {status}: {detail}")


class OperationTimeoutError(CapabilityInvocationError):
    """Raised when an operation does not finish within the configured limit.

    Attributes:
        operation_url: URL of the operation being awaited.
        timeout: The limit in seconds.
    """

    def __init__(self, operation_url: str, timeout: float) -> None:  # noqa: ASYNC109
        """Initialize the exception.

        Args:
            operation_url: URL of the operation being awaited.
            timeout: The limit in seconds.
        """
        self.operation_url = operation_url
        self.timeout = timeout
        super().__init__(f"Operation did not complete within {timeout}s")
