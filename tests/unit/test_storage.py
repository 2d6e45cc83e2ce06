"""Unit tests for blob stores and the storage relocator."""

from __future__ import annotations

import asyncio
import shutil
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

from doc_intake.storage import (
    LocalBlobStore,
    LocationMissingError,
    RelocationOutcome,
    S3BlobStore,
    StorageError,
    StorageRelocationError,
    StorageRelocator,
    content_type_for,
)


if TYPE_CHECKING:
    from pathlib import Path


def client_error(code: str, operation: str = "Operation") -> ClientError:
    """Build a botocore ClientError with the given code."""
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


# ---------------------------------------------------------------------------
# LocalBlobStore
# ---------------------------------------------------------------------------


class TestLocalBlobStore:
    """Tests for the directory-backed store."""

    async def test_put_get_roundtrip(self, storage_root: Path) -> None:
        """Objects written can be read back."""
        store = LocalBlobStore(storage_root)
        await store.create_location("input")
        await store.put("input", "a.pdf", b"%PDF-data")

        assert await store.get("input", "a.pdf") == b"%PDF-data"
        assert await store.exists("input", "a.pdf")
        assert (storage_root / "input" / "a.pdf").read_bytes() == b"%PDF-data"

    async def test_get_missing_returns_none(self, storage_root: Path) -> None:
        """Absent objects and locations read as None."""
        store = LocalBlobStore(storage_root)
        assert await store.get("nowhere", "a.pdf") is None

    async def test_put_into_missing_location_fails(self, storage_root: Path) -> None:
        """Locations must be created before writing."""
        store = LocalBlobStore(storage_root)
        await store.create_location("input")

        with pytest.raises(LocationMissingError, match="Location does not exist") as exc_info:
            await store.put("other", "a.pdf", b"x")
        assert exc_info.value.location == "other"

    async def test_delete_reports_presence(self, storage_root: Path) -> None:
        """Delete returns whether something was removed."""
        store = LocalBlobStore(storage_root)
        await store.create_location("input")
        await store.put("input", "a.pdf", b"x")

        assert await store.delete("input", "a.pdf") is True
        assert await store.delete("input", "a.pdf") is False

    async def test_list_sorted_and_hides_temp_files(self, storage_root: Path) -> None:
        """Listing is sorted and skips in-progress writes."""
        store = LocalBlobStore(storage_root)
        await store.create_location("splitted")
        for key in ("page-2_a.pdf", "page-1_a.pdf"):
            await store.put("splitted", key, b"x")
        (storage_root / "splitted" / ".tmp-partial").write_bytes(b"x")

        assert await store.list("splitted") == ["page-1_a.pdf", "page-2_a.pdf"]
        assert await store.list("missing") == []

    async def test_list_locations(self, storage_root: Path) -> None:
        """Locations are the directories under the root."""
        store = LocalBlobStore(storage_root)
        assert await store.list_locations() == []

        for location in ("splitted", "classified-invoice", "input"):
            await store.create_location(location)

        assert await store.list_locations() == [
            "classified-invoice",
            "input",
            "splitted",
        ]
        assert await store.location_exists("input")
        assert not await store.location_exists("backup")

    @pytest.mark.parametrize("key", ["", "../escape", "a/b", ".", ".tmp-x"])
    async def test_invalid_keys_rejected(self, storage_root: Path, key: str) -> None:
        """Keys cannot escape their location or collide with temp files."""
        store = LocalBlobStore(storage_root)
        await store.create_location("input")

        with pytest.raises(StorageError, match="Invalid object key"):
            await store.put("input", key, b"x")

    async def test_invalid_location_rejected(self, storage_root: Path) -> None:
        """Location names are single path segments."""
        store = LocalBlobStore(storage_root)
        with pytest.raises(StorageError, match="Invalid location name"):
            await store.create_location("..")


# ---------------------------------------------------------------------------
# S3BlobStore
# ---------------------------------------------------------------------------


@pytest.fixture
def s3_client() -> AsyncMock:
    """Mocked aioboto3 S3 client."""
    return AsyncMock()


@pytest.fixture
def s3_store(s3_client: AsyncMock) -> S3BlobStore:
    """S3 store whose session hands out the mocked client."""
    context = MagicMock()
    context.__aenter__.return_value = s3_client
    context.__aexit__.return_value = False
    session = MagicMock()
    session.client.return_value = context
    return S3BlobStore(bucket_prefix="intake-", session=session)


class TestS3BlobStore:
    """Tests for the S3 store against a mocked client."""

    async def test_bucket_named_from_prefix(
        self, s3_store: S3BlobStore, s3_client: AsyncMock
    ) -> None:
        """Locations map to prefixed bucket names."""
        await s3_store.put("splitted", "page-1_a.pdf", b"x", content_type="application/pdf")

        s3_client.put_object.assert_awaited_once_with(
            Bucket="intake-splitted",
            Key="page-1_a.pdf",
            Body=b"x",
            ContentType="application/pdf",
        )

    async def test_create_existing_bucket_succeeds(
        self, s3_store: S3BlobStore, s3_client: AsyncMock
    ) -> None:
        """Creating a bucket that already exists is not an error."""
        s3_client.create_bucket.side_effect = client_error("BucketAlreadyOwnedByYou")
        await s3_store.create_location("input")

    async def test_create_bucket_failure(
        self, s3_store: S3BlobStore, s3_client: AsyncMock
    ) -> None:
        """Other create errors surface as StorageError."""
        s3_client.create_bucket.side_effect = client_error("AccessDenied")
        with pytest.raises(StorageError, match="intake-input"):
            await s3_store.create_location("input")

    async def test_put_into_missing_bucket(
        self, s3_store: S3BlobStore, s3_client: AsyncMock
    ) -> None:
        """A missing bucket is reported as a missing location."""
        s3_client.put_object.side_effect = client_error("NoSuchBucket", "PutObject")
        with pytest.raises(LocationMissingError):
            await s3_store.put("splitted", "a.pdf", b"x")

    async def test_get_object(
        self, s3_store: S3BlobStore, s3_client: AsyncMock
    ) -> None:
        """Object bodies are read fully."""
        body = MagicMock()
        body.read = AsyncMock(return_value=b"%PDF-x")
        s3_client.get_object.return_value = {"Body": body}

        assert await s3_store.get("input", "a.pdf") == b"%PDF-x"

    @pytest.mark.parametrize("code", ["NoSuchKey", "NoSuchBucket"])
    async def test_get_missing(
        self, s3_store: S3BlobStore, s3_client: AsyncMock, code: str
    ) -> None:
        """Missing objects and buckets read as None."""
        s3_client.get_object.side_effect = client_error(code)
        assert await s3_store.get("input", "a.pdf") is None

    async def test_delete_absent_object(
        self, s3_store: S3BlobStore, s3_client: AsyncMock
    ) -> None:
        """Deleting an absent object reports False without deleting."""
        s3_client.head_object.side_effect = client_error("404")

        assert await s3_store.delete("input", "a.pdf") is False
        s3_client.delete_object.assert_not_awaited()

    async def test_delete_present_object(
        self, s3_store: S3BlobStore, s3_client: AsyncMock
    ) -> None:
        """Deleting a present object reports True."""
        assert await s3_store.delete("input", "a.pdf") is True
        s3_client.delete_object.assert_awaited_once_with(
            Bucket="intake-input",
            Key="a.pdf",
        )

    async def test_list_locations_filters_prefix(
        self, s3_store: S3BlobStore, s3_client: AsyncMock
    ) -> None:
        """Only prefixed buckets are locations."""
        s3_client.list_buckets.return_value = {
            "Buckets": [
                {"Name": "intake-splitted"},
                {"Name": "unrelated"},
                {"Name": "intake-classified-invoice"},
                {"Name": "intake-"},
            ],
        }

        assert await s3_store.list_locations() == ["classified-invoice", "splitted"]

    async def test_list_keys(
        self, s3_store: S3BlobStore, s3_client: AsyncMock
    ) -> None:
        """Keys are collected across pages."""

        async def pages(**_: Any) -> Any:
            yield {"Contents": [{"Key": "a.pdf"}]}
            yield {"Contents": [{"Key": "b.pdf"}]}
            yield {}

        paginator = MagicMock()
        paginator.paginate.side_effect = pages
        s3_client.get_paginator = MagicMock(return_value=paginator)

        assert await s3_store.list("input") == ["a.pdf", "b.pdf"]


# ---------------------------------------------------------------------------
# StorageRelocator
# ---------------------------------------------------------------------------


class TestContentType:
    """Tests for content_type_for."""

    @pytest.mark.parametrize(
        ("key", "expected"),
        [
            ("a.pdf", "application/pdf"),
            ("A.PDF", "application/pdf"),
            ("notes.txt", "application/octet-stream"),
            ("noext", "application/octet-stream"),
        ],
    )
    def test_inferred_from_extension(self, key: str, expected: str) -> None:
        """PDF keys are application/pdf, everything else is generic."""
        assert content_type_for(key) == expected


class TestStorageRelocator:
    """Tests for StorageRelocator."""

    async def test_upload_creates_location(
        self, relocator: StorageRelocator, storage_root: Path
    ) -> None:
        """Uploads create their destination on demand."""
        await relocator.upload("backup", "a.pdf", b"x")
        assert (storage_root / "backup" / "a.pdf").exists()

    async def test_upload_recreates_removed_location(
        self, relocator: StorageRelocator, storage_root: Path
    ) -> None:
        """A location deleted outside the process is recreated on the next write."""
        await relocator.upload("splitted", "a.pdf", b"x")
        shutil.rmtree(storage_root / "splitted")

        await relocator.upload("splitted", "b.pdf", b"y")

        assert await relocator.download("splitted", "b.pdf") == b"y"

    async def test_relocate_into_removed_location(
        self, relocator: StorageRelocator, storage_root: Path
    ) -> None:
        """Relocation also survives a destination removed behind its back."""
        await relocator.upload("classified-invoice", "old.pdf", b"x")
        shutil.rmtree(storage_root / "classified-invoice")
        await relocator.upload("splitted", "p.pdf", b"y")

        outcome = await relocator.relocate("splitted", "classified-invoice", "p.pdf")

        assert outcome == RelocationOutcome.MOVED
        assert await relocator.download("classified-invoice", "p.pdf") == b"y"

    async def test_relocate_moves_object(self, relocator: StorageRelocator) -> None:
        """After a move the object exists only in the destination."""
        await relocator.upload("splitted", "page-1_a.pdf", b"%PDF-1")

        outcome = await relocator.relocate(
            "splitted", "classified-invoice", "page-1_a.pdf"
        )

        assert outcome == RelocationOutcome.MOVED
        assert await relocator.download("classified-invoice", "page-1_a.pdf") == b"%PDF-1"
        assert not await relocator.exists("splitted", "page-1_a.pdf")

    async def test_relocate_missing_source(self, relocator: StorageRelocator) -> None:
        """A missing source is reported and nothing is created."""
        await relocator.ensure_location("splitted")

        outcome = await relocator.relocate("splitted", "classified-x", "ghost.pdf")

        assert outcome == RelocationOutcome.NOT_FOUND
        assert "classified-x" not in await relocator.list_locations()

    async def test_relocate_twice_is_harmless(self, relocator: StorageRelocator) -> None:
        """A repeated move finds nothing and leaves the first result intact."""
        await relocator.upload("splitted", "k.pdf", b"%PDF-1")
        await relocator.relocate("splitted", "classified-a", "k.pdf")

        second = await relocator.relocate("splitted", "classified-a", "k.pdf")

        assert second == RelocationOutcome.NOT_FOUND
        assert await relocator.list("classified-a") == ["k.pdf"]

    async def test_relocate_overwrites_destination(
        self, relocator: StorageRelocator
    ) -> None:
        """The moved object replaces an existing one under the same key."""
        await relocator.upload("classified-a", "k.pdf", b"old")
        await relocator.upload("splitted", "k.pdf", b"new")

        await relocator.relocate("splitted", "classified-a", "k.pdf")

        assert await relocator.download("classified-a", "k.pdf") == b"new"

    async def test_relocate_copy_failure_keeps_source(
        self, relocator: StorageRelocator
    ) -> None:
        """When the copy fails the source object is untouched."""
        await relocator.upload("splitted", "k.pdf", b"%PDF-1")

        with pytest.raises(StorageRelocationError) as exc_info:
            await relocator.relocate("splitted", "bad/dest", "k.pdf")

        assert exc_info.value.location == "bad/dest"
        assert isinstance(exc_info.value.cause, StorageError)
        assert await relocator.exists("splitted", "k.pdf")

    async def test_concurrent_ensure_location(
        self, relocator: StorageRelocator
    ) -> None:
        """Concurrent first writes to a new location all succeed."""
        await asyncio.gather(
            *(relocator.upload("classified-new", f"page-{i}.pdf", b"x") for i in range(10)),
        )
        assert len(await relocator.list("classified-new")) == 10
