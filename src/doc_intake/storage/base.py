"""Abstract blob store interface.

A blob store holds named locations, each a flat namespace of keys mapping
to byte payloads. Locations are created on demand; creating one that
already exists is not an error.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


__all__ = ["BlobStore"]


class BlobStore(ABC):
    """Async interface implemented by every storage backend."""

    async def open(self) -> None:  # noqa: B027
        """Acquire backend resources. Optional."""

    async def close(self) -> None:  # noqa: B027
        """Release backend resources. Optional."""

    @abstractmethod
    async def create_location(self, location: str) -> None:
        """Create a location; succeed silently if it already exists."""

    @abstractmethod
    async def list_locations(self) -> list[str]:
        """List existing locations."""

    @abstractmethod
    async def location_exists(self, location: str) -> bool:
        """Return whether a location exists."""

    @abstractmethod
    async def put(
        self,
        location: str,
        key: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
    ) -> None:
        """Write an object, replacing any existing one with the same key."""

    @abstractmethod
    async def get(self, location: str, key: str) -> bytes | None:
        """Read an object, or None if it does not exist."""

    @abstractmethod
    async def delete(self, location: str, key: str) -> bool:
        """Delete an object. Returns False if nothing was there."""

    @abstractmethod
    async def exists(self, location: str, key: str) -> bool:
        """Return whether an object exists."""

    @abstractmethod
    async def list(self, location: str) -> list[str]:
        """List keys in a location (empty if the location does not exist)."""
