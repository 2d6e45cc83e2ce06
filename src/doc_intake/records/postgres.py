"""PostgreSQL record backend.

Records are stored as JSONB documents keyed by id. Read-modify-write runs
inside a transaction holding a per-id advisory lock, which serializes
writers to the same record even before its row exists. The error log is
an append-only table.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from doc_intake.observability import get_logger
from doc_intake.records.base import RecordBackend
from doc_intake.records.exceptions import RecordStoreError
from doc_intake.records.models import PipelineRecord, ProcessingErrorRecord


if TYPE_CHECKING:
    from doc_intake.records.base import RecordUpdater
    from doc_intake.records.models import PipelineStage


__all__ = ["PostgresRecordBackend"]


class PostgresRecordBackend(RecordBackend):
    """Record backend on an ``asyncpg`` connection pool.

    Table names come from validated configuration (lower-case letters and
    underscores only) and are interpolated into the SQL.
    """

    def __init__(
        self,
        dsn: str,
        *,
        records_table: str = "pipeline_records",
        errors_table: str = "processing_errors",
        min_size: int = 1,
        max_size: int = 10,
    ) -> None:
        """Initialize the backend.

        Args:
            dsn: PostgreSQL connection URL.
            records_table: Table holding pipeline records.
            errors_table: Table holding the error log.
            min_size: Minimum pool size.
            max_size: Maximum pool size.
        """
        self._dsn = dsn
        self.records_table = records_table
        self.errors_table = errors_table
        self._min_size = min_size
        self._max_size = max_size
        self._pool: Any = None
        self._logger = get_logger(__name__)

    async def open(self) -> None:
        """Create the connection pool and the tables if missing."""
        import asyncpg

        if self._pool is not None:
            return
        try:
            self._pool = await asyncpg.create_pool(
                self._dsn,
                min_size=self._min_size,
                max_size=self._max_size,
            )
        except (OSError, asyncpg.PostgresError) as exc:
            msg = "Failed to connect to record database"
            raise RecordStoreError(msg, cause=exc) from exc

        async with self._pool.acquire() as conn:
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.records_table} (
                    id TEXT PRIMARY KEY,
                    stage TEXT NOT NULL,
                    data JSONB NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                )
                """,  # noqa: S608
            )
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.errors_table} (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    stage TEXT NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL,
                    data JSONB NOT NULL
                )
                """,  # noqa: S608
            )
        self._logger.info(
            "record_store_opened",
            records_table=self.records_table,
            errors_table=self.errors_table,
        )

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    def _require_pool(self) -> Any:
        if self._pool is None:
            msg = "Record backend is not open"
            raise RecordStoreError(msg)
        return self._pool

    async def read(self, document_id: str) -> PipelineRecord | None:
        """Return the stored record, or None."""
        pool = self._require_pool()
        row = await pool.fetchrow(
            f"SELECT data::text AS data FROM {self.records_table} WHERE id = $1",  # noqa: S608
            document_id,
        )
        if row is None:
            return None
        return PipelineRecord.model_validate_json(row["data"])

    async def update(
        self,
        document_id: str,
        updater: RecordUpdater,
    ) -> PipelineRecord:
        """Apply ``updater`` inside a transaction holding the id's lock."""
        pool = self._require_pool()
        async with pool.acquire() as conn, conn.transaction():
            await conn.execute(
                "SELECT pg_advisory_xact_lock(hashtext($1))",
                document_id,
            )
            row = await conn.fetchrow(
                f"SELECT data::text AS data FROM {self.records_table} "  # noqa: S608
                "WHERE id = $1 FOR UPDATE",
                document_id,
            )
            current = (
                PipelineRecord.model_validate_json(row["data"]) if row else None
            )
            updated = updater(current)
            await conn.execute(
                f"""
                INSERT INTO {self.records_table} (id, stage, data, updated_at)
                VALUES ($1, $2, $3::jsonb, now())
                ON CONFLICT (id) DO UPDATE
                SET stage = EXCLUDED.stage,
                    data = EXCLUDED.data,
                    updated_at = EXCLUDED.updated_at
                """,  # noqa: S608
                document_id,
                updated.stage.value,
                updated.model_dump_json(),
            )
        return updated

    async def query(
        self,
        *,
        stage: PipelineStage | None = None,
        limit: int = 100,
    ) -> list[PipelineRecord]:
        """List records, most recently updated first."""
        pool = self._require_pool()
        if stage is None:
            rows = await pool.fetch(
                f"SELECT data::text AS data FROM {self.records_table} "  # noqa: S608
                "ORDER BY updated_at DESC LIMIT $1",
                limit,
            )
        else:
            rows = await pool.fetch(
                f"SELECT data::text AS data FROM {self.records_table} "  # noqa: S608
                "WHERE stage = $1 ORDER BY updated_at DESC LIMIT $2",
                stage.value,
                limit,
            )
        return [PipelineRecord.model_validate_json(row["data"]) for row in rows]

    async def append_error(self, error: ProcessingErrorRecord) -> None:
        """Insert an error log entry."""
        pool = self._require_pool()
        await pool.execute(
            f"""
            INSERT INTO {self.errors_table} (id, document_id, stage, created_at, data)
            VALUES ($1, $2, $3, $4, $5::jsonb)
            """,  # noqa: S608
            error.id,
            error.document_id,
            error.stage.value,
            error.timestamp,
            error.model_dump_json(),
        )

    async def list_errors(
        self,
        *,
        document_id: str | None = None,
        limit: int = 100,
    ) -> list[ProcessingErrorRecord]:
        """List error log entries, newest first."""
        pool = self._require_pool()
        if document_id is None:
            rows = await pool.fetch(
                f"SELECT data::text AS data FROM {self.errors_table} "  # noqa: S608
                "ORDER BY created_at DESC LIMIT $1",
                limit,
            )
        else:
            rows = await pool.fetch(
                f"SELECT data::text AS data FROM {self.errors_table} "  # noqa: S608
                "WHERE document_id = $1 ORDER BY created_at DESC LIMIT $2",
                document_id,
                limit,
            )
        return [ProcessingErrorRecord.model_validate_json(row["data"]) for row in rows]
