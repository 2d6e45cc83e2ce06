"""Configuration schema models for doc-intake.

This module defines Pydantic models for all configuration sections.
These models are used by the Settings class to validate and type-check
configuration loaded from YAML files and environment variables.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path  # noqa: TC003 - needed at runtime for Pydantic
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator


__all__ = [
    "BlobBackend",
    "ClassificationConfig",
    "ConfigBaseModel",
    "IntelligenceConfig",
    "JobsConfig",
    "LocationsConfig",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "OCRConfig",
    "ObservabilityConfig",
    "RecordBackend",
    "RecordsConfig",
    "S3ConnectionConfig",
    "StorageConfig",
    "TriggersConfig",
]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class BlobBackend(StrEnum):
    """Where storage locations live.

    Attributes:
        LOCAL: One directory per location under a root directory.
        S3: One bucket per location on an S3-compatible service.
    """

    LOCAL = "local"
    S3 = "s3"


class RecordBackend(StrEnum):
    """Where pipeline records and the error log live.

    Attributes:
        MEMORY: Process-local dictionaries (development and tests).
        POSTGRES: JSONB rows in PostgreSQL.
    """

    MEMORY = "memory"
    POSTGRES = "postgres"


class LogFormat(StrEnum):
    """Log output format.

    Attributes:
        JSON: Machine-parseable logfmt output.
        CONSOLE: Human-readable console output with colors.
    """

    JSON = "json"
    CONSOLE = "console"


class LogLevel(StrEnum):
    """Log verbosity level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ---------------------------------------------------------------------------
# Base Configuration Model
# ---------------------------------------------------------------------------


class ConfigBaseModel(BaseModel):
    """Base model for all configuration sections.

    Uses stricter settings than API models to catch configuration typos:
    - extra="forbid" raises errors for unknown fields
    - validate_default=True ensures defaults are validated
    """

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        validate_default=True,
    )


# ---------------------------------------------------------------------------
# Document Understanding Service
# ---------------------------------------------------------------------------


class IntelligenceConfig(ConfigBaseModel):
    """Document-understanding service connection.

    Either `api_key` or `api_key_file` must be provided before the
    classification or OCR stage can be built. `api_key` supports ${VAR}
    interpolation.

    Attributes:
        endpoint: Base URL of the service.
        api_key: Subscription key sent with every request.
        api_key_file: Path to a file containing the key.
        api_version: API version query parameter.
        poll_interval_seconds: Delay between operation status checks when
            the service does not send Retry-After.
        operation_timeout_seconds: Give up waiting on an operation after
            this long. None waits until the service reaches a terminal state.
        max_retries: Retries for transient HTTP failures.
    """

    endpoint: str | None = Field(
        default=None,
        description="Base URL of the document-understanding service",
    )
    api_key: str | None = Field(
        default=None,
        description="Subscription key (supports ${VAR} interpolation)",
    )
    api_key_file: Path | None = Field(
        default=None,
        description="Path to file containing the subscription key",
    )
    api_version: str = Field(default="2024-11-30")
    poll_interval_seconds: Annotated[
        float,
        Field(gt=0.0, le=60.0, description="Default poll interval"),
    ] = 1.0
    operation_timeout_seconds: Annotated[
        float | None,
        Field(gt=0.0, description="Operation wait limit (None = unbounded)"),
    ] = None
    max_retries: Annotated[
        int,
        Field(ge=0, le=10, description="Retries for transient failures"),
    ] = 3

    @field_validator("endpoint")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        """Remove trailing slash from URL to avoid double slashes."""
        return v.rstrip("/") if v else v


class ClassificationConfig(ConfigBaseModel):
    """Classification stage configuration.

    Attributes:
        model_id: Identifier of the classifier model. Required by the
            classification stage.
    """

    model_id: str | None = Field(
        default=None,
        description="Classifier model identifier",
    )


class OCRConfig(ConfigBaseModel):
    """OCR stage configuration.

    The classification stage records which OCR model each page should be
    read with, picking `model_mapping[doc_type]` and falling back to
    `default_model`.

    Attributes:
        default_model: Model used for document types without a mapping.
        model_mapping: Lower-cased document type to OCR model identifier.
    """

    default_model: str = Field(default="prebuilt-read")
    model_mapping: dict[str, str] = Field(default_factory=dict)

    @field_validator("model_mapping")
    @classmethod
    def lowercase_keys(cls, v: dict[str, str]) -> dict[str, str]:
        """Normalize document type keys to lower case."""
        return {key.lower(): value for key, value in v.items()}

    def model_for(self, doc_type: str) -> str:
        """Return the OCR model to use for a document type."""
        return self.model_mapping.get(doc_type.lower(), self.default_model)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class S3ConnectionConfig(ConfigBaseModel):
    """S3-compatible object storage connection.

    Attributes:
        endpoint_url: Custom endpoint (MinIO, LocalStack); None for AWS.
        region: Region name.
        access_key_id: Access key (supports ${VAR}); None uses the default
            credential chain.
        secret_access_key: Secret key (supports ${VAR}).
        bucket_prefix: Prepended to every location name to form the bucket.
    """

    endpoint_url: str | None = None
    region: str = Field(default="us-east-1")
    access_key_id: str | None = None
    secret_access_key: str | None = None
    bucket_prefix: str = Field(default="")


class StorageConfig(ConfigBaseModel):
    """Blob storage configuration.

    Attributes:
        backend: Storage backend.
        root: Root directory for the local backend.
        connection: Connection settings for the S3 backend.
    """

    backend: BlobBackend = Field(default=BlobBackend.LOCAL)
    root: Path = Field(default=Path("./data/storage"))
    connection: S3ConnectionConfig = Field(default_factory=S3ConnectionConfig)


class LocationsConfig(ConfigBaseModel):
    """Names of the storage locations used for stage handoff.

    Attributes:
        input: Raw uploads; triggers ingestion.
        backup: Untouched copy of every valid upload.
        invalid: Uploads that are not PDFs.
        splitted: Per-page artifacts; triggers classification.
        classified_prefix: Prefix of the per-type locations that trigger OCR.
    """

    input: str = Field(default="input")
    backup: str = Field(default="backup")
    invalid: str = Field(default="invalid-files")
    splitted: str = Field(default="splitted")
    classified_prefix: str = Field(default="classified-")

    def classified(self, doc_type: str) -> str:
        """Return the location name for a document type."""
        return f"{self.classified_prefix}{doc_type}"

    @property
    def classified_pattern(self) -> str:
        """Glob pattern matching every classified location."""
        return f"{self.classified_prefix}*"


# ---------------------------------------------------------------------------
# Record Store
# ---------------------------------------------------------------------------


class RecordsConfig(ConfigBaseModel):
    """Record store configuration.

    Attributes:
        backend: Record store backend.
        dsn: PostgreSQL connection URL (supports ${VAR}); required by the
            postgres backend.
        records_table: Table holding one row per pipeline record.
        errors_table: Append-only table holding processing errors.
    """

    backend: RecordBackend = Field(default=RecordBackend.MEMORY)
    dsn: str | None = Field(
        default=None,
        description="PostgreSQL URL (supports ${VAR})",
    )
    records_table: str = Field(default="pipeline_records", pattern=r"^[a-z_]+$")
    errors_table: str = Field(default="processing_errors", pattern=r"^[a-z_]+$")


# ---------------------------------------------------------------------------
# Triggers and Jobs
# ---------------------------------------------------------------------------


class TriggersConfig(ConfigBaseModel):
    """Location polling configuration.

    The poller is the local trigger source: it lists trigger locations and
    delivers every key it finds to the registered stage handler.

    Attributes:
        interval_seconds: Time between listings.
        redelivery_seconds: A key still present this long after its last
            delivery is delivered again.
        batch_size: Maximum keys delivered per location per listing.
    """

    interval_seconds: Annotated[
        float,
        Field(gt=0.0, le=3600.0, description="Polling interval"),
    ] = 5.0
    redelivery_seconds: Annotated[
        float,
        Field(ge=1.0, le=86400.0, description="Redelivery delay"),
    ] = 300.0
    batch_size: Annotated[
        int,
        Field(ge=1, le=1000, description="Max keys per location per poll"),
    ] = 50


class JobsConfig(ConfigBaseModel):
    """Concurrent stage invocation limits.

    Attributes:
        workers: Number of concurrent stage invocations.
        timeout: Maximum time per invocation in seconds.
    """

    workers: Annotated[
        int,
        Field(ge=1, le=64, description="Number of concurrent workers"),
    ] = 4
    timeout: Annotated[
        int,
        Field(
            ge=10,
            le=7200,
            description="Timeout per invocation in seconds",
        ),
    ] = 900


# ---------------------------------------------------------------------------
# Observability
# ---------------------------------------------------------------------------


class LoggingConfig(ConfigBaseModel):
    """Logging configuration.

    Attributes:
        level: Log verbosity level.
        format: Log output format (json or console).
    """

    level: LogLevel = Field(default=LogLevel.INFO)
    format: LogFormat = Field(default=LogFormat.JSON)


class ObservabilityConfig(ConfigBaseModel):
    """Observability configuration.

    Attributes:
        logging: Logging configuration.
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
