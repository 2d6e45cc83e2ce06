"""Filesystem blob store.

Each location is a directory under a root directory and each key a file
inside it. Writes go to a hidden temporary file that is renamed into
place, so readers never see a partially written object.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path

from doc_intake.observability import get_logger
from doc_intake.storage.base import BlobStore
from doc_intake.storage.exceptions import LocationMissingError, StorageError


__all__ = ["LocalBlobStore"]


_TEMP_PREFIX = ".tmp-"


class LocalBlobStore(BlobStore):
    """Blob store backed by a local directory tree.

    Blocking filesystem calls run in a worker thread.

    Attributes:
        root: Directory holding one subdirectory per location.
    """

    def __init__(self, root: Path | str) -> None:
        """Initialize the store.

        Args:
            root: Directory holding one subdirectory per location. Created
                on first use.
        """
        self.root = Path(root)
        self._logger = get_logger(__name__)

    def _location_path(self, location: str) -> Path:
        if not location or "/" in location or "\\" in location or location in {".", ".."}:
            msg = f"Invalid location name: {location!r}"
            raise StorageError(msg)
        return self.root / location

    def _object_path(self, location: str, key: str) -> Path:
        if (
            not key
            or "/" in key
            or "\\" in key
            or key in {".", ".."}
            or key.startswith(_TEMP_PREFIX)
        ):
            msg = f"Invalid object key: {key!r}"
            raise StorageError(msg)
        return self._location_path(location) / key

    async def create_location(self, location: str) -> None:
        """Create the location directory (and the root) if missing."""
        path = self._location_path(location)
        await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)

    async def list_locations(self) -> list[str]:
        """List location directories under the root, sorted by name."""

        def _scan() -> list[str]:
            if not self.root.is_dir():
                return []
            return sorted(entry.name for entry in self.root.iterdir() if entry.is_dir())

        return await asyncio.to_thread(_scan)

    async def location_exists(self, location: str) -> bool:
        """Return whether the location directory exists."""
        path = self._location_path(location)
        return await asyncio.to_thread(path.is_dir)

    async def put(
        self,
        location: str,
        key: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
    ) -> None:
        """Atomically write an object into an existing location.

        Raises:
            LocationMissingError: If the location does not exist.
            StorageError: If the write fails.
        """
        path = self._object_path(location, key)
        try:
            await asyncio.to_thread(self._write_atomic, path, data)
        except FileNotFoundError as exc:
            raise LocationMissingError(location, cause=exc) from exc
        except OSError as exc:
            msg = f"Failed to write {location}/{key}"
            raise StorageError(msg, cause=exc) from exc
        self._logger.debug(
            "object_written",
            location=location,
            key=key,
            size=len(data),
            content_type=content_type,
        )

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=_TEMP_PREFIX, dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def get(self, location: str, key: str) -> bytes | None:
        """Read an object, or None if it does not exist."""
        path = self._object_path(location, key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as exc:
            msg = f"Failed to read {location}/{key}"
            raise StorageError(msg, cause=exc) from exc

    async def delete(self, location: str, key: str) -> bool:
        """Delete an object. Returns False if nothing was there."""
        path = self._object_path(location, key)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as exc:
            msg = f"Failed to delete {location}/{key}"
            raise StorageError(msg, cause=exc) from exc
        return True

    async def exists(self, location: str, key: str) -> bool:
        """Return whether an object exists."""
        path = self._object_path(location, key)
        return await asyncio.to_thread(path.is_file)

    async def list(self, location: str) -> list[str]:
        """List keys in a location, sorted by name."""
        path = self._location_path(location)

        def _scan() -> list[str]:
            if not path.is_dir():
                return []
            return sorted(
                entry.name
                for entry in path.iterdir()
                if entry.is_file() and not entry.name.startswith(_TEMP_PREFIX)
            )

        return await asyncio.to_thread(_scan)
