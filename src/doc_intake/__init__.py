"""doc-intake: event-driven PDF intake pipeline.

Uploaded PDFs are validated, split into single pages, classified by a
document-understanding service, then OCR'd, with progress tracked in a
record store and files moved between storage locations per stage.
"""

from __future__ import annotations


__version__ = "0.1.0"

__all__ = ["__version__"]
