"""Document-understanding capability client.

This module provides an async HTTP client for the classifier and OCR
models used by the pipeline. Both follow a submit-then-poll contract.

Example:
    ```python
    from doc_intake.intelligence import DocumentIntelligenceClient

    async with DocumentIntelligenceClient(endpoint, api_key) as client:
        raw = await client.classify("invoice-classifier", pdf_bytes)
        result = await client.analyze("prebuilt-read", pdf_bytes)
        for page in result.pages:
            print([line.content for line in page.lines])
    ```
"""

from __future__ import annotations

from doc_intake.intelligence.client import DocumentIntelligenceClient
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
    DocumentLine,
    DocumentPage,
    OperationState,
    OperationStatus,
)


__all__ = [
    "AnalyzeResult",
    "CapabilityAuthenticationError",
    "CapabilityConnectionError",
    "CapabilityInvocationError",
    "CapabilityNotFoundError",
    "CapabilityRateLimitError",
    "CapabilityServerError",
    "CapabilityValidationError",
    "DocumentIntelligenceClient",
    "DocumentLine",
    "DocumentPage",
    "OperationFailedError",
    "OperationState",
    "OperationStatus",
    "OperationTimeoutError",
]
