"""Async HTTP client for the document-understanding service."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any, Self

import httpx
import structlog

from doc_intake.intelligence.exceptions import (
    CapabilityAuthenticationError,
    CapabilityConnectionError,
    CapabilityInvocationError,
    CapabilityNotFoundError,
    CapabilityRateLimitError,
    CapabilityServerError,
    CapabilityValidationError,
    OperationFailedError,
    OperationTimeoutError,
)
from doc_intake.intelligence.models import (
    AnalyzeResult,
    OperationState,
    OperationStatus,
)


if TYPE_CHECKING:
    from collections.abc import Mapping

    from doc_intake.config import IntelligenceConfig


__all__ = ["DocumentIntelligenceClient"]


class DocumentIntelligenceClient:
    """Async client for classifier and OCR models.

    Both capabilities follow a submit-then-poll contract: the document is
    posted to the model, the service answers ``202 Accepted`` with an
    ``Operation-Location`` header, and the operation URL is polled until
    it reaches a terminal state. Polling suspends only the calling
    coroutine, so many invocations can wait concurrently.

    Example:
        ```python
        async with DocumentIntelligenceClient(
            endpoint="https://example.cognitiveservices.azure.com",
            api_key="your-key",
        ) as client:
            raw = await client.classify("my-classifier", pdf_bytes)
            result = await client.analyze("prebuilt-read", pdf_bytes)
            print(len(result.pages))
        ```

    Attributes:
        endpoint: Base URL of the service.
        api_version: API version sent with every request.
        timeout: Default timeout for individual HTTP requests.
        max_retries: Maximum number of retry attempts for transient errors.
        poll_interval: Delay between status checks without Retry-After.
        operation_timeout: Limit on waiting for an operation, or None.
    """

    DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_API_VERSION = "2024-11-30"
    RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

    def __init__(  # noqa: PLR0913
        self,
        endpoint: str,
        api_key: str,
        *,
        api_version: str | None = None,
        timeout: httpx.Timeout | None = None,
        max_retries: int | None = None,
        poll_interval: float = 1.0,
        operation_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            endpoint: Base URL of the service.
            api_key: Subscription key.
            api_version: API version (default: DEFAULT_API_VERSION).
            timeout: Optional custom timeout configuration.
            max_retries: Maximum retry attempts for transient errors (default: 3).
            poll_interval: Seconds between status checks without Retry-After.
            operation_timeout: Seconds to wait on an operation; None waits
                until the service reports a terminal state.
            transport: Optional custom transport for testing or advanced config.
        """
        self.endpoint = endpoint.rstrip("/")
        self.api_version = api_version or self.DEFAULT_API_VERSION
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.max_retries = (
            max_retries if max_retries is not None else self.DEFAULT_MAX_RETRIES
        )
        self.poll_interval = poll_interval
        self.operation_timeout = operation_timeout
        self._api_key = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._logger = structlog.get_logger(__name__)

    @classmethod
    def from_config(cls, config: IntelligenceConfig) -> Self:
        """Create a client from the ``intelligence`` settings section.

        Raises:
            ValueError: If the endpoint or key is missing.
        """
        if not config.endpoint or not config.api_key:
            msg = "intelligence.endpoint and intelligence.api_key are required"
            raise ValueError(msg)
        return cls(
            config.endpoint,
            config.api_key,
            api_version=config.api_version,
            max_retries=config.max_retries,
            poll_interval=config.poll_interval_seconds,
            operation_timeout=config.operation_timeout_seconds,
        )

    @property
    def _headers(self) -> dict[str, str]:
        """Default headers for API requests."""
        return {
            "Ocp-Apim-Subscription-Key": self._api_key,
            "Accept": "application/json",
        }

    async def __aenter__(self) -> Self:
        """Enter async context and create HTTP client."""
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context and close HTTP client."""
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure the HTTP client is initialized."""
        if self._client is None or self._client.is_closed:
            transport = self._transport or httpx.AsyncHTTPTransport(retries=1)
            self._client = httpx.AsyncClient(
                base_url=f"{self.endpoint}/documentintelligence",
                headers=self._headers,
                timeout=self.timeout,
                transport=transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # Core Request Methods with Retry Logic
    # -------------------------------------------------------------------------

    async def _request(  # noqa: C901
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Execute an HTTP request with retry logic.

        Args:
            method: HTTP method.
            url: Path relative to the service root, or an absolute
                operation URL.
            params: Query parameters.
            content: Raw request body.
            headers: Additional headers (merged with defaults).

        Returns:
            The HTTP response.

        Raises:
            CapabilityAuthenticationError: For 401/403 responses.
            CapabilityNotFoundError: For 404 responses.
            CapabilityRateLimitError: For 429 responses (after retries exhausted).
            CapabilityServerError: For 5xx responses (after retries exhausted).
            CapabilityValidationError: For 400 responses.
            CapabilityConnectionError: For connection failures.
        """
        client = await self._ensure_client()
        log = self._logger.bind(method=method, url=url)

        last_exception: Exception | None = None
        retry_after: float = 0.5

        for attempt in range(self.max_retries + 1):
            try:
                if attempt > 0:
                    log.debug(
                        "retrying_request",
                        attempt=attempt,
                        max_retries=self.max_retries,
                    )
                    await asyncio.sleep(retry_after)

                request_headers = dict(self._headers)
                if headers:
                    request_headers.update(headers)

                response = await client.request(
                    method,
                    url,
                    params=dict(params) if params else None,
                    content=content,
                    headers=request_headers,
                )

                log.debug(
                    "api_response",
                    status_code=response.status_code,
                    elapsed_ms=response.elapsed.total_seconds() * 1000,
                )

                if response.status_code == 429:  # noqa: PLR2004
                    retry_after = self._parse_retry_after(response, retry_after)
                    if attempt < self.max_retries:
                        continue
                    raise CapabilityRateLimitError(
                        retry_after=retry_after,
                        response=response,
                    )

                if response.status_code in self.RETRY_STATUS_CODES:
                    retry_after = min(retry_after * 2, 30.0)
                    if attempt < self.max_retries:
                        continue
                    raise CapabilityServerError(  # noqa: TRY003
                        f"Server error: {response.status_code}",  # noqa: EM102
                        response=response,
                    )

                self._raise_for_status(response)
                return response  # noqa: TRY300

            except httpx.ConnectError as exc:
                last_exception = exc
                retry_after = min(retry_after * 2, 30.0)
                if attempt < self.max_retries:
                    log.warning("connection_error", error=str(exc), attempt=attempt)
                    continue
                raise CapabilityConnectionError(cause=exc) from exc

            except httpx.TimeoutException as exc:
                last_exception = exc
                retry_after = min(retry_after * 2, 30.0)
                if attempt < self.max_retries:
                    log.warning("timeout_error", error=str(exc), attempt=attempt)
                    continue
                raise CapabilityConnectionError(
                    message="Request timed out",
                    cause=exc,
                ) from exc

        msg = "Max retries exceeded"
        raise CapabilityInvocationError(msg) from last_exception

    def _parse_retry_after(
        self,
        response: httpx.Response,
        default: float,
    ) -> float:
        """Parse Retry-After header value."""
        retry_after_header = response.headers.get("Retry-After")
        if retry_after_header:
            try:
                return float(retry_after_header)
            except ValueError:
                pass
        return min(default * 2, 60.0)

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Raise appropriate exception for error status codes."""
        if response.is_success:
            return

        status = response.status_code

        if status in {401, 403}:
            raise CapabilityAuthenticationError(  # noqa: TRY003
                "Authentication failed",  # noqa: EM101
                response=response,
            )

        if status == 404:  # noqa: PLR2004
            raise CapabilityNotFoundError(  # noqa: TRY003
                "Model or operation not found",  # noqa: EM101
                response=response,
            )

        if status == 400:  # noqa: PLR2004
            error = None
            with contextlib.suppress(Exception):
                error = response.json().get("error")
            raise CapabilityValidationError(  # noqa: TRY003
                "Request rejected",  # noqa: EM101
                error=error if isinstance(error, dict) else None,
                response=response,
            )

        if status >= 500:  # noqa: PLR2004
            raise CapabilityServerError(  # noqa: TRY003
                f"Server error: {status}",  # noqa: EM102
                response=response,
            )

        raise CapabilityInvocationError(  # noqa: TRY003
            f"Unexpected error: {status}",  # noqa: EM102
            response=response,
        )

    # -------------------------------------------------------------------------
    # Operation Submission
    # -------------------------------------------------------------------------

    async def _submit(self, path: str, data: bytes) -> str:
        """Post a document and return the operation URL to poll."""
        response = await self._request(
            "POST",
            path,
            params={"api-version": self.api_version},
            content=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        operation_url = response.headers.get("Operation-Location")
        if not operation_url:
            msg = "Service accepted the document but returned no Operation-Location"
            raise CapabilityInvocationError(msg, response=response)
        self._logger.debug("operation_submitted", path=path, operation=operation_url)
        return operation_url

    async def begin_classify(self, model_id: str, data: bytes) -> str:
        """Submit a document to a classifier model.

        Args:
            model_id: Classifier identifier.
            data: Document bytes.

        Returns:
            The operation URL to poll.
        """
        return await self._submit(f"/documentClassifiers/{model_id}:analyze", data)

    async def begin_analyze(self, model_id: str, data: bytes) -> str:
        """Submit a document to an extraction (OCR) model.

        Args:
            model_id: Model identifier, e.g. ``prebuilt-read``.
            data: Document bytes.

        Returns:
            The operation URL to poll.
        """
        return await self._submit(f"/documentModels/{model_id}:analyze", data)

    # -------------------------------------------------------------------------
    # Operation Status
    # -------------------------------------------------------------------------

    async def _fetch_operation(
        self,
        operation_url: str,
    ) -> tuple[OperationStatus, float | None]:
        response = await self._request("GET", operation_url)
        retry_after: float | None = None
        header = response.headers.get("Retry-After")
        if header:
            with contextlib.suppress(ValueError):
                retry_after = float(header)
        return OperationStatus.model_validate(response.json()), retry_after

    async def get_operation(self, operation_url: str) -> OperationStatus:
        """Get the current status of an operation.

        Args:
            operation_url: URL from the ``Operation-Location`` header.

        Returns:
            Operation status information.
        """
        status, _ = await self._fetch_operation(operation_url)
        return status

    async def wait_for_operation(
        self,
        operation_url: str,
        *,
        timeout: float | None = None,  # noqa: ASYNC109
        poll_interval: float | None = None,
    ) -> OperationStatus:
        """Wait for an operation to reach a terminal state.

        Args:
            operation_url: URL from the ``Operation-Location`` header.
            timeout: Maximum time to wait in seconds (default:
                ``operation_timeout``; None waits indefinitely).
            poll_interval: Time between status checks when the service
                sends no Retry-After (default: ``poll_interval``).

        Returns:
            Final operation status.

        Raises:
            OperationTimeoutError: If the operation doesn't finish in time.
        """
        limit = timeout if timeout is not None else self.operation_timeout
        interval = poll_interval if poll_interval is not None else self.poll_interval
        loop = asyncio.get_running_loop()
        start = loop.time()

        while True:
            status, retry_after = await self._fetch_operation(operation_url)

            if status.status.is_terminal:
                self._logger.debug(
                    "operation_finished",
                    operation=operation_url,
                    status=status.status.value,
                    waited_seconds=loop.time() - start,
                )
                return status

            elapsed = loop.time() - start
            if limit is not None and elapsed >= limit:
                raise OperationTimeoutError(operation_url, limit)

            await asyncio.sleep(retry_after if retry_after is not None else interval)

    async def _run(self, operation_url: str) -> dict[str, Any]:
        status = await self.wait_for_operation(operation_url)
        if status.status != OperationState.SUCCEEDED:
            raise OperationFailedError(
                operation_url,
                status=status.status.value,
                error=status.error,
            )
        return status.analyze_result or {}

    # -------------------------------------------------------------------------
    # Capabilities
    # -------------------------------------------------------------------------

    async def classify(self, model_id: str, data: bytes) -> dict[str, Any]:
        """Classify a document and wait for the result.

        The result is returned untyped: its shape differs across classifier
        versions, so callers interpret it themselves.

        Args:
            model_id: Classifier identifier.
            data: Document bytes.

        Returns:
            The ``analyzeResult`` payload.

        Raises:
            OperationFailedError: If the operation fails or is cancelled.
            CapabilityInvocationError: For transport-level failures.
        """
        operation_url = await self.begin_classify(model_id, data)
        return await self._run(operation_url)

    async def analyze(self, model_id: str, data: bytes) -> AnalyzeResult:
        """Run an extraction model over a document and wait for the result.

        Args:
            model_id: Model identifier.
            data: Document bytes.

        Returns:
            The page-structured result, with the raw payload attached.

        Raises:
            OperationFailedError: If the operation fails or is cancelled.
            CapabilityInvocationError: For transport-level failures.
        """
        operation_url = await self.begin_analyze(model_id, data)
        payload = await self._run(operation_url)
        return AnalyzeResult.from_payload(payload)
