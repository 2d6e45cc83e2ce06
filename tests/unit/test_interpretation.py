"""Unit tests for classifier interpretation and text flattening."""

from __future__ import annotations

from typing import Any

import pytest

from doc_intake.intelligence import AnalyzeResult
from doc_intake.pipeline import (
    flatten_text,
    interpret_classification,
    location_safe_doc_type,
)


class TestInterpretClassification:
    """Tests for interpret_classification."""

    def test_documents_shape(self) -> None:
        """The first entry of ``documents`` wins."""
        result = interpret_classification(
            {
                "documents": [
                    {"docType": "Invoice", "confidence": 0.91},
                    {"docType": "Receipt", "confidence": 0.99},
                ],
            },
        )
        assert (result.doc_type, result.confidence, result.source) == (
            "Invoice",
            0.91,
            "documents",
        )

    def test_classification_shape(self) -> None:
        """A nested ``classification`` object is recognised."""
        result = interpret_classification(
            {"classification": {"docType": "Letter", "confidence": 0.5}},
        )
        assert result.doc_type == "Letter"
        assert result.source == "classification"

    def test_top_level_shape(self) -> None:
        """Fields at the top level are recognised."""
        result = interpret_classification({"docType": "Form", "confidence": "0.7"})
        assert result.doc_type == "Form"
        assert result.confidence == pytest.approx(0.7)
        assert result.source == "top_level"

    def test_deep_search(self) -> None:
        """Unknown nesting falls back to a deep search."""
        result = interpret_classification(
            {"outer": {"items": [{"docType": "Contract", "confidence": 0.4}]}},
        )
        assert result.doc_type == "Contract"
        assert result.confidence == pytest.approx(0.4)
        assert result.source == "search"

    @pytest.mark.parametrize("payload", [{}, {"documents": []}, None, "text", []])
    def test_unrecognised_defaults_to_unknown(self, payload: Any) -> None:
        """Nothing recognisable yields unknown with zero confidence."""
        result = interpret_classification(payload)
        assert result.doc_type == "unknown"
        assert result.confidence == 0.0
        assert result.source == "default"

    def test_missing_doc_type_is_unknown(self) -> None:
        """A recognised shape without docType is unknown."""
        result = interpret_classification({"documents": [{"confidence": 0.8}]})
        assert result.doc_type == "unknown"
        assert result.confidence == pytest.approx(0.8)

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(1.7, 1.0), (-0.2, 0.0), (float("nan"), 0.0), ("n/a", 0.0), (None, 0.0)],
    )
    def test_confidence_clamped(self, raw: Any, expected: float) -> None:
        """Confidence is always within [0, 1]."""
        result = interpret_classification(
            {"documents": [{"docType": "X", "confidence": raw}]},
        )
        assert result.confidence == expected


class TestLocationSafeDocType:
    """Tests for location_safe_doc_type."""

    @pytest.mark.parametrize(
        ("doc_type", "expected"),
        [
            ("Invoice", "invoice"),
            ("Invoice / 2024", "invoice-2024"),
            ("tax_form", "tax-form"),
            ("--odd--", "odd"),
            ("", "unknown"),
            ("!!!", "unknown"),
        ],
    )
    def test_normalisation(self, doc_type: str, expected: str) -> None:
        """Types become lower-case hyphenated names."""
        assert location_safe_doc_type(doc_type) == expected


class TestFlattenText:
    """Tests for flatten_text."""

    def test_lines_and_pages_joined(self) -> None:
        """Lines join with newlines and pages with a blank line."""
        result = AnalyzeResult.from_payload(
            {
                "modelId": "prebuilt-read",
                "pages": [
                    {"pageNumber": 1, "lines": [{"content": "A"}, {"content": "B"}]},
                    {"pageNumber": 2, "lines": [{"content": "C"}]},
                ],
            },
        )
        assert flatten_text(result) == "A\nB\n\nC"

    def test_no_pages(self) -> None:
        """A result without pages flattens to an empty string."""
        assert flatten_text(AnalyzeResult.from_payload({})) == ""
