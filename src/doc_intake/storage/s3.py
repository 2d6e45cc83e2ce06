"""S3-compatible blob store.

Each location maps to a bucket named ``{bucket_prefix}{location}``. Works
against AWS S3 and compatible services (MinIO, LocalStack) via a custom
endpoint URL.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import aioboto3
from botocore.exceptions import ClientError

from doc_intake.observability import get_logger
from doc_intake.storage.base import BlobStore
from doc_intake.storage.exceptions import LocationMissingError, StorageError


if TYPE_CHECKING:
    from doc_intake.config import S3ConnectionConfig


__all__ = ["S3BlobStore"]


_ALREADY_EXISTS = frozenset({"BucketAlreadyOwnedByYou", "BucketAlreadyExists"})
_NOT_FOUND = frozenset({"NoSuchKey", "NoSuchBucket", "404", "NotFound"})


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3BlobStore(BlobStore):
    """Blob store backed by S3 buckets.

    A client is opened per operation from a shared ``aioboto3.Session``.

    Attributes:
        bucket_prefix: Prepended to every location name.
    """

    def __init__(
        self,
        *,
        endpoint_url: str | None = None,
        region: str = "us-east-1",
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        bucket_prefix: str = "",
        session: aioboto3.Session | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            endpoint_url: Custom endpoint, or None for AWS.
            region: Region name.
            access_key_id: Access key; None uses the default credential chain.
            secret_access_key: Secret key.
            bucket_prefix: Prepended to every location name.
            session: Session to reuse (mainly for tests).
        """
        self.bucket_prefix = bucket_prefix
        self._endpoint_url = endpoint_url
        self._region = region
        self._session = session or aioboto3.Session(
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
        )
        self._logger = get_logger(__name__)

    @classmethod
    def from_config(cls, config: S3ConnectionConfig) -> S3BlobStore:
        """Create a store from the ``storage.connection`` settings section."""
        return cls(
            endpoint_url=config.endpoint_url,
            region=config.region,
            access_key_id=config.access_key_id,
            secret_access_key=config.secret_access_key,
            bucket_prefix=config.bucket_prefix,
        )

    def _client(self) -> Any:
        """Return an async S3 client context manager."""
        return self._session.client(
            "s3",
            endpoint_url=self._endpoint_url,
            region_name=self._region,
        )

    def _bucket(self, location: str) -> str:
        return f"{self.bucket_prefix}{location}"

    async def create_location(self, location: str) -> None:
        """Create the bucket; existing buckets count as success."""
        bucket = self._bucket(location)
        params: dict[str, Any] = {"Bucket": bucket}
        if self._region != "us-east-1":
            params["CreateBucketConfiguration"] = {
                "LocationConstraint": self._region,
            }
        async with self._client() as s3:
            try:
                await s3.create_bucket(**params)
            except ClientError as exc:
                if _error_code(exc) in _ALREADY_EXISTS:
                    return
                msg = f"Failed to create bucket {bucket}"
                raise StorageError(msg, cause=exc) from exc
        self._logger.info("bucket_created", bucket=bucket)

    async def list_locations(self) -> list[str]:
        """List buckets carrying the prefix, with the prefix removed."""
        async with self._client() as s3:
            try:
                response = await s3.list_buckets()
            except ClientError as exc:
                raise StorageError(str(exc), cause=exc) from exc
        prefix = self.bucket_prefix
        return sorted(
            bucket["Name"][len(prefix) :]
            for bucket in response.get("Buckets", [])
            if bucket["Name"].startswith(prefix) and len(bucket["Name"]) > len(prefix)
        )

    async def location_exists(self, location: str) -> bool:
        """Return whether the bucket exists."""
        async with self._client() as s3:
            try:
                await s3.head_bucket(Bucket=self._bucket(location))
            except ClientError as exc:
                if _error_code(exc) in _NOT_FOUND:
                    return False
                raise StorageError(str(exc), cause=exc) from exc
        return True

    async def put(
        self,
        location: str,
        key: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
    ) -> None:
        """Upload an object."""
        async with self._client() as s3:
            try:
                await s3.put_object(
                    Bucket=self._bucket(location),
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                )
            except ClientError as exc:
                if _error_code(exc) == "NoSuchBucket":
                    raise LocationMissingError(location, cause=exc) from exc
                msg = f"Failed to write {location}/{key}"
                raise StorageError(msg, cause=exc) from exc
        self._logger.debug(
            "object_written",
            location=location,
            key=key,
            size=len(data),
            content_type=content_type,
        )

    async def get(self, location: str, key: str) -> bytes | None:
        """Download an object, or None if it does not exist."""
        async with self._client() as s3:
            try:
                response = await s3.get_object(Bucket=self._bucket(location), Key=key)
                body: bytes = await response["Body"].read()
            except ClientError as exc:
                if _error_code(exc) in _NOT_FOUND:
                    return None
                msg = f"Failed to read {location}/{key}"
                raise StorageError(msg, cause=exc) from exc
        return body

    async def exists(self, location: str, key: str) -> bool:
        """Return whether an object exists."""
        async with self._client() as s3:
            try:
                await s3.head_object(Bucket=self._bucket(location), Key=key)
            except ClientError as exc:
                if _error_code(exc) in _NOT_FOUND:
                    return False
                raise StorageError(str(exc), cause=exc) from exc
        return True

    async def delete(self, location: str, key: str) -> bool:
        """Delete an object. Returns False if nothing was there.

        S3 deletes are idempotent, so presence is checked first.
        """
        if not await self.exists(location, key):
            return False
        async with self._client() as s3:
            try:
                await s3.delete_object(Bucket=self._bucket(location), Key=key)
            except ClientError as exc:
                msg = f"Failed to delete {location}/{key}"
                raise StorageError(msg, cause=exc) from exc
        return True

    async def list(self, location: str) -> list[str]:
        """List keys in the bucket (empty if it does not exist)."""
        keys: list[str] = []
        async with self._client() as s3:
            paginator = s3.get_paginator("list_objects_v2")
            try:
                async for page in paginator.paginate(Bucket=self._bucket(location)):
                    keys.extend(item["Key"] for item in page.get("Contents", []))
            except ClientError as exc:
                if _error_code(exc) in _NOT_FOUND:
                    return []
                raise StorageError(str(exc), cause=exc) from exc
        return keys
