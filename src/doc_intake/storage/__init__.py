"""Blob storage backends and stage relocation.

Example:
    ```python
    from doc_intake.storage import LocalBlobStore, StorageRelocator

    relocator = StorageRelocator(LocalBlobStore("./data/storage"))
    await relocator.upload("splitted", "page-1_scan.pdf", data)
    await relocator.relocate("splitted", "classified-invoice", "page-1_scan.pdf")
    ```
"""

from __future__ import annotations

from doc_intake.storage.base import BlobStore
from doc_intake.storage.exceptions import (
    LocationMissingError,
    StorageError,
    StorageRelocationError,
)
from doc_intake.storage.local import LocalBlobStore
from doc_intake.storage.relocator import (
    RelocationOutcome,
    StorageRelocator,
    content_type_for,
)
from doc_intake.storage.s3 import S3BlobStore


__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "LocationMissingError",
    "RelocationOutcome",
    "S3BlobStore",
    "StorageError",
    "StorageRelocationError",
    "StorageRelocator",
    "content_type_for",
]
