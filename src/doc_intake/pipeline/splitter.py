"""PDF page splitting.

This module turns an uploaded PDF into one self-contained single-page PDF
per page using PyMuPDF. The source is opened leniently: PyMuPDF repairs
broken cross-reference tables on open, and documents that are encrypted
with an empty user password are unlocked. Document metadata is never
rewritten.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

import fitz  # PyMuPDF

from doc_intake.observability import get_logger
from doc_intake.pipeline.exceptions import MalformedDocumentError
from doc_intake.pipeline.models import PageArtifact


__all__ = [
    "PDF_SIGNATURE",
    "PageSplitter",
    "has_pdf_signature",
    "page_file_name",
]


PDF_SIGNATURE = b"%PDF-"


def has_pdf_signature(data: bytes) -> bool:
    """Return True if ``data`` starts with the ``%PDF-`` signature."""
    return data[: len(PDF_SIGNATURE)] == PDF_SIGNATURE


def page_file_name(page_index: int, source_name: str) -> str:
    """Return the storage key of a page artifact.

    Args:
        page_index: 1-based page position in the original document.
        source_name: Name of the uploaded file.

    Example:
        >>> page_file_name(3, "scan.pdf")
        'page-3_scan.pdf'
    """
    return f"page-{page_index}_{Path(source_name).name}"


class PageSplitter:
    """Splits a PDF into single-page PDFs.

    Pages that fail to extract are logged and skipped; the remaining
    artifacts keep their original 1-based numbering, so gaps are possible.
    Pages are staged through a scratch directory that is always removed.

    Splitting is CPU-bound and synchronous; async callers should run it
    with ``asyncio.to_thread``.

    Example:
        ```python
        splitter = PageSplitter()
        for page in splitter.split(pdf_bytes, "scan.pdf"):
            print(page.file_name, page.size_bytes)
        ```
    """

    def __init__(self) -> None:
        """Initialize the splitter."""
        self._logger = get_logger(__name__)

    def split(self, data: bytes, source_name: str) -> list[PageArtifact]:
        """Split a PDF into per-page artifacts.

        Args:
            data: The PDF bytes.
            source_name: Name of the uploaded file, used to derive page keys.

        Returns:
            One artifact per extracted page, in page order.

        Raises:
            MalformedDocumentError: If the data is not a PDF, cannot be
                opened, or yields no pages.
        """
        log = self._logger.bind(source=source_name, size_bytes=len(data))

        if not has_pdf_signature(data):
            msg = "Missing %PDF- signature"
            raise MalformedDocumentError(msg)

        try:
            source = fitz.open(stream=data, filetype="pdf")
        except fitz.EmptyFileError as exc:
            msg = "Empty PDF file"
            raise MalformedDocumentError(msg, cause=exc) from exc
        except fitz.FileDataError as exc:
            msg = f"Invalid or corrupted PDF file: {exc}"
            raise MalformedDocumentError(msg, cause=exc) from exc
        except Exception as exc:
            msg = f"Cannot open PDF: {exc}"
            raise MalformedDocumentError(msg, cause=exc) from exc

        artifacts: list[PageArtifact] = []
        with source:
            if source.needs_pass and not source.authenticate(""):
                msg = "PDF is encrypted and requires a password"
                raise MalformedDocumentError(msg)

            page_count = source.page_count
            log.debug("splitting_document", page_count=page_count)

            with tempfile.TemporaryDirectory(prefix="doc-intake-split-") as scratch:
                scratch_dir = Path(scratch)
                for index in range(page_count):
                    page_number = index + 1
                    try:
                        page_data = self._extract_page(source, index, scratch_dir)
                    except Exception as exc:  # noqa: BLE001
                        log.warning(
                            "page_extraction_failed",
                            page=page_number,
                            error=str(exc),
                            error_type=type(exc).__name__,
                        )
                        continue

                    if not has_pdf_signature(page_data):
                        log.warning("page_signature_invalid", page=page_number)
                        continue

                    artifacts.append(
                        PageArtifact(
                            file_name=page_file_name(page_number, source_name),
                            page_index=page_number,
                            data=page_data,
                        ),
                    )

        if not artifacts:
            msg = "No pages extracted"
            raise MalformedDocumentError(msg)

        log.info(
            "document_split",
            page_count=page_count,
            pages_extracted=len(artifacts),
        )
        return artifacts

    def split_file(self, path: Path | str) -> list[PageArtifact]:
        """Split a PDF file from disk."""
        path = Path(path)
        return self.split(path.read_bytes(), path.name)

    def _extract_page(
        self,
        source: fitz.Document,
        index: int,
        scratch_dir: Path,
    ) -> bytes:
        """Build a one-page PDF for page ``index`` and return its bytes."""
        target = scratch_dir / f"page-{index + 1}.pdf"
        with fitz.open() as page_doc:
            page_doc.insert_pdf(source, from_page=index, to_page=index)
            page_doc.save(target, garbage=3, deflate=True)
        return target.read_bytes()
