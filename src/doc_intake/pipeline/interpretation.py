"""Interpretation of classifier output and OCR text flattening.

Classifier results do not have a stable shape across model versions, so
the document type is looked up through an ordered list of extractors.
The first extractor that recognises its shape wins; if none does, a deep
search looks for ``docType`` and ``confidence`` anywhere in the payload.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from doc_intake.observability import get_logger


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from doc_intake.intelligence import AnalyzeResult


__all__ = [
    "UNKNOWN_DOC_TYPE",
    "Classification",
    "flatten_text",
    "interpret_classification",
    "location_safe_doc_type",
]


UNKNOWN_DOC_TYPE = "unknown"

_UNSAFE_CHARS = re.compile(r"[^a-z0-9-]+")


@dataclass(frozen=True, slots=True)
class Classification:
    """Interpreted classifier output.

    Attributes:
        doc_type: Document type, or ``"unknown"``.
        confidence: Confidence clamped to [0, 1].
        source: Name of the extractor that matched (``"default"`` if none).
    """

    doc_type: str
    confidence: float
    source: str


def _clamp(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return min(max(number, 0.0), 1.0)


def _from_documents(result: dict[str, Any]) -> tuple[Any, Any] | None:
    documents = result.get("documents")
    if isinstance(documents, list) and documents and isinstance(documents[0], dict):
        first = documents[0]
        return first.get("docType"), first.get("confidence")
    return None


def _from_classification(result: dict[str, Any]) -> tuple[Any, Any] | None:
    classification = result.get("classification")
    if isinstance(classification, dict) and classification:
        return classification.get("docType"), classification.get("confidence")
    return None


def _from_top_level(result: dict[str, Any]) -> tuple[Any, Any] | None:
    if result.get("docType"):
        return result.get("docType"), result.get("confidence")
    return None


_EXTRACTORS: list[tuple[str, Callable[[dict[str, Any]], tuple[Any, Any] | None]]] = [
    ("documents", _from_documents),
    ("classification", _from_classification),
    ("top_level", _from_top_level),
]


def _deep_find(value: Any, name: str) -> Any:
    """Return the first value stored under ``name`` anywhere in ``value``."""
    if isinstance(value, dict):
        if name in value:
            return value[name]
        children: Iterable[Any] = value.values()
    elif isinstance(value, list):
        children = value
    else:
        return None
    for child in children:
        found = _deep_find(child, name)
        if found is not None:
            return found
    return None


def interpret_classification(result: Any) -> Classification:
    """Extract the document type and confidence from a classifier result.

    Args:
        result: The classifier's ``analyzeResult`` payload.

    Returns:
        The interpreted classification. Unrecognised results yield
        ``("unknown", 0.0)``.
    """
    logger = get_logger(__name__)

    if isinstance(result, dict):
        for name, extractor in _EXTRACTORS:
            found = extractor(result)
            if found is None:
                continue
            doc_type, confidence = found
            logger.debug("classification_shape_matched", shape=name)
            return Classification(
                doc_type=str(doc_type) if doc_type else UNKNOWN_DOC_TYPE,
                confidence=_clamp(confidence),
                source=name,
            )

    doc_type = _deep_find(result, "docType")
    confidence = _deep_find(result, "confidence")
    if doc_type or confidence is not None:
        logger.debug(
            "classification_found_by_search",
            doc_type=doc_type,
            confidence=confidence,
        )
        return Classification(
            doc_type=str(doc_type) if doc_type else UNKNOWN_DOC_TYPE,
            confidence=_clamp(confidence),
            source="search",
        )

    logger.warning("classification_shape_unrecognised")
    return Classification(doc_type=UNKNOWN_DOC_TYPE, confidence=0.0, source="default")


def location_safe_doc_type(doc_type: str) -> str:
    """Normalise a document type for use in a location name.

    Lower-cases, replaces runs of characters other than letters, digits
    and hyphens with a single hyphen, and trims hyphens from the ends.

    Example:
        >>> location_safe_doc_type("Invoice / 2024")
        'invoice-2024'
    """
    safe = _UNSAFE_CHARS.sub("-", doc_type.lower()).strip("-")
    return safe or UNKNOWN_DOC_TYPE


def flatten_text(result: AnalyzeResult) -> str:
    """Join recognised lines into plain text.

    Lines are joined with newlines within a page, and pages with a blank
    line, in document order.
    """
    return "\n\n".join(
        "\n".join(line.content for line in page.lines) for page in result.pages
    )
