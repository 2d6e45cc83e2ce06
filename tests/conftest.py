"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import fitz  # PyMuPDF
import pytest

from doc_intake.config import (
    ClassificationConfig,
    IntelligenceConfig,
    OCRConfig,
    Settings,
    StorageConfig,
)
from doc_intake.records import InMemoryRecordBackend, PipelineRecordStore
from doc_intake.storage import LocalBlobStore, StorageRelocator


if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


def build_pdf(pages: int, *, label: str = "Page") -> bytes:
    """Return a PDF with ``pages`` pages, each carrying one line of text."""
    with fitz.open() as doc:
        for number in range(1, pages + 1):
            page = doc.new_page()
            page.insert_text((72, 72), f"{label} {number}")
        return doc.tobytes()


@pytest.fixture
def make_pdf() -> Callable[..., bytes]:
    """Factory for generated PDFs."""
    return build_pdf


@pytest.fixture
def pdf_bytes() -> bytes:
    """A three-page PDF."""
    return build_pdf(3)


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    """Root directory for the local blob store."""
    return tmp_path / "storage"


@pytest.fixture
def relocator(storage_root: Path) -> StorageRelocator:
    """Relocator over a local blob store in a temporary directory."""
    return StorageRelocator(LocalBlobStore(storage_root))


@pytest.fixture
def record_store() -> PipelineRecordStore:
    """Record store over the in-memory backend."""
    return PipelineRecordStore(InMemoryRecordBackend())


@pytest.fixture
def settings(storage_root: Path) -> Settings:
    """Settings for a complete local pipeline."""
    return Settings(
        intelligence=IntelligenceConfig(
            endpoint="https://di.test",
            api_key="test-key",
            poll_interval_seconds=0.01,
        ),
        classification=ClassificationConfig(model_id="page-classifier"),
        ocr=OCRConfig(model_mapping={"Invoice": "prebuilt-invoice"}),
        storage=StorageConfig(root=storage_root),
    )
