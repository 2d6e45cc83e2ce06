"""Moves objects between storage locations as documents change stage."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from doc_intake.observability import get_logger
from doc_intake.storage.exceptions import (
    LocationMissingError,
    StorageError,
    StorageRelocationError,
)


if TYPE_CHECKING:
    from doc_intake.storage.base import BlobStore


__all__ = [
    "RelocationOutcome",
    "StorageRelocator",
    "content_type_for",
]


class RelocationOutcome(StrEnum):
    """Result of a relocation.

    Attributes:
        MOVED: The object now lives in the destination only.
        NOT_FOUND: The source object was absent; nothing changed.
    """

    MOVED = "moved"
    NOT_FOUND = "not_found"


def content_type_for(key: str) -> str:
    """Infer a content type from an object key's extension."""
    if key.lower().endswith(".pdf"):
        return "application/pdf"
    return "application/octet-stream"


class StorageRelocator:
    """Stage-facing operations on a blob store.

    Every write first ensures its destination location exists. Locations
    already seen are remembered, so the store is asked at most once per
    location per process; concurrent first writes may both ask, which the
    store tolerates. A location removed behind the relocator's back is
    forgotten and recreated on the next write to it.
    """

    def __init__(self, store: BlobStore) -> None:
        """Initialize the relocator.

        Args:
            store: Backend holding the locations.
        """
        self.store = store
        self._known_locations: set[str] = set()
        self._logger = get_logger(__name__)

    async def ensure_location(self, location: str) -> None:
        """Create a location if it does not exist yet."""
        if location in self._known_locations:
            return
        await self.store.create_location(location)
        self._known_locations.add(location)

    async def relocate(self, source: str, dest: str, key: str) -> RelocationOutcome:
        """Move an object from one location to another under the same key.

        The object is copied into ``dest`` before it is removed from
        ``source``, so a failure part-way leaves at least one copy.

        Args:
            source: Location the object is in.
            dest: Location to move it to.
            key: Object key.

        Returns:
            MOVED, or NOT_FOUND if the source object was absent.

        Raises:
            StorageRelocationError: If the copy or the delete fails.
        """
        log = self._logger.bind(source=source, dest=dest, key=key)

        try:
            data = await self.store.get(source, key)
        except StorageError as exc:
            msg = "Failed to read object for relocation"
            raise StorageRelocationError(msg, location=source, key=key, cause=exc) from exc

        if data is None:
            log.warning("relocation_source_missing")
            return RelocationOutcome.NOT_FOUND

        try:
            await self._put(dest, key, data)
        except StorageError as exc:
            msg = "Failed to copy object to destination"
            raise StorageRelocationError(msg, location=dest, key=key, cause=exc) from exc

        try:
            removed = await self.store.delete(source, key)
        except StorageError as exc:
            msg = "Failed to delete relocated object from source"
            raise StorageRelocationError(msg, location=source, key=key, cause=exc) from exc

        log.info("object_relocated", source_removed=removed)
        return RelocationOutcome.MOVED

    async def upload(self, location: str, key: str, data: bytes) -> None:
        """Write an object, creating the location if needed."""
        await self._put(location, key, data)

    async def _put(self, location: str, key: str, data: bytes) -> None:
        await self.ensure_location(location)
        content_type = content_type_for(key)
        try:
            await self.store.put(location, key, data, content_type=content_type)
        except LocationMissingError:
            self._known_locations.discard(location)
            self._logger.warning("location_vanished", location=location)
            await self.ensure_location(location)
            await self.store.put(location, key, data, content_type=content_type)

    async def download(self, location: str, key: str) -> bytes | None:
        """Read an object, or None if it does not exist."""
        return await self.store.get(location, key)

    async def delete(self, location: str, key: str) -> bool:
        """Delete an object. Returns False if it was already gone."""
        return await self.store.delete(location, key)

    async def exists(self, location: str, key: str) -> bool:
        """Return whether an object exists."""
        return await self.store.exists(location, key)

    async def list(self, location: str) -> list[str]:
        """List the keys in a location."""
        return await self.store.list(location)

    async def list_locations(self) -> list[str]:
        """List existing locations."""
        return await self.store.list_locations()
