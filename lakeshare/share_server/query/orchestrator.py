"""
Query orchestration.

The QueryOrchestrator is the engine's entry point for every caller (HTTP
layer, CLI). It binds a table location to its storage backend, resolves
table state through the log engine and then either:

- materializes a page of rows through the FileContentReader (query), or
- mints a signed URL per file, lazily, for protocol manifests
  (file_manifest / change_manifest)

Invariants:
    - One failing data file never fails a query; its rows are omitted
    - One failing signature never fails a manifest; the file is omitted
    - Data paths from the log are resolved under the table root; a path
      that escapes it is treated as a failing file
    - MissingLogError, MissingMetadataError and StorageUnavailableError
      always propagate
    - Rows are concatenated in active-file order (log insertion order, or
      path order with sort_files_by_path) before slicing

How to change safely:
    - Per-file work runs under a Semaphore; asyncio.gather keeps results in
      enumeration order, so raising concurrency does not reorder rows
    - Keep manifests as async generators so responses can stream
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable

from ..config import QueryConfig, SigningConfig
from ..errors import FileDecodeError, MissingMetadataError, SharingError, SignedUrlError
from ..log.actions import AddFile, Column, columns_or_empty
from ..log.changes import ChangeDataFeedExtractor, ChangeQuery, ChangeRecord, ChangeSet, ChangeType
from ..log.replay import LogReplayEngine, TableState, TableStats, TimeTravel
from ..storage.base import join_table_path
from ..storage.registry import BackendRegistry, ResolvedLocation
from .pagination import slice_rows
from .readers import FileContentReader, Row

logger = logging.getLogger(__name__)


def _data_path(
    base_path: str, relative: str, error_type: Callable[[str, str], SharingError]
) -> str:
    try:
        return join_table_path(base_path, relative)
    except ValueError as e:
        raise error_type(relative, str(e)) from e


@dataclass(frozen=True)
class QueryOptions:
    """Row query parameters.

    Attributes:
        limit: Maximum rows to return
        offset: Rows to skip
        time_travel: Optional version/timestamp cutoff
    """

    limit: int = 1000
    offset: int = 0
    time_travel: TimeTravel | None = None


@dataclass
class QueryResult:
    """A page of table rows."""

    columns: list[Column]
    rows: list[Row]
    total_rows: int
    has_more: bool
    version: int = -1

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": [c.to_dict() for c in self.columns],
            "rows": self.rows,
            "totalRows": self.total_rows,
            "hasMore": self.has_more,
        }


@dataclass
class Snapshot:
    """A resolved table state bound to the backend that serves it."""

    resolved: ResolvedLocation
    state: TableState

    @property
    def stats(self) -> TableStats:
        return self.state.stats()


@dataclass
class ChangeFeed:
    """An extracted change set bound to the backend that serves it."""

    resolved: ResolvedLocation
    changes: ChangeSet


@dataclass
class SignedFile:
    """A data file with a time-limited download URL."""

    url: str
    id: str
    size: int
    expiration_timestamp: int
    stats: str | None = None
    partition_values: dict[str, str] | None = None
    version: int | None = None
    timestamp: int | None = None
    change_type: ChangeType | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "url": self.url,
            "id": self.id,
            "size": self.size,
            "stats": self.stats,
            "partitionValues": self.partition_values,
            "version": self.version,
            "timestamp": self.timestamp,
            "expirationTimestamp": self.expiration_timestamp,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class ValidationResult:
    """Outcome of validate_table()."""

    valid: bool
    error: str | None = None
    metadata: dict[str, Any] | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"valid": self.valid}
        if self.error is not None:
            data["error"] = self.error
        if self.metadata is not None:
            data["metadata"] = self.metadata
        return data


class QueryOrchestrator:
    """Resolves table state and turns it into rows or signed manifests.

    Example:
        >>> orchestrator = QueryOrchestrator(registry)
        >>> result = await orchestrator.query("s3://lake/orders", QueryOptions(limit=10))
        >>> result.total_rows, result.has_more
        (250, True)
    """

    def __init__(
        self,
        registry: BackendRegistry,
        query_config: QueryConfig | None = None,
        signing_config: SigningConfig | None = None,
        reader: FileContentReader | None = None,
        engine: LogReplayEngine | None = None,
        extractor: ChangeDataFeedExtractor | None = None,
    ) -> None:
        self.registry = registry
        self.query_config = query_config or QueryConfig()
        self.signing_config = signing_config or SigningConfig()
        self.reader = reader or FileContentReader()
        self.engine = engine or LogReplayEngine()
        self.extractor = extractor or ChangeDataFeedExtractor()

    # --- State resolution ------------------------------------------------

    async def snapshot(
        self, location: str, time_travel: TimeTravel | None = None
    ) -> Snapshot:
        """Resolve a table's state, optionally as of a version or timestamp."""
        resolved = self.registry.resolve(location)
        state = await self.engine.replay(
            resolved.backend, resolved.base_path, time_travel, location=location
        )
        return Snapshot(resolved=resolved, state=state)

    async def changes(self, location: str, query: ChangeQuery | None = None) -> ChangeFeed:
        """Extract a table's change set inside a version/timestamp window."""
        resolved = self.registry.resolve(location)
        change_set = await self.extractor.extract(
            resolved.backend, resolved.base_path, query, location=location
        )
        return ChangeFeed(resolved=resolved, changes=change_set)

    def _ordered_files(self, state: TableState) -> list[AddFile]:
        files = state.files
        if self.query_config.sort_files_by_path:
            files.sort(key=lambda f: f.path)
        return files

    # --- Row queries -----------------------------------------------------

    async def query(self, location: str, options: QueryOptions | None = None) -> QueryResult:
        """Materialize a page of rows.

        Raises:
            MissingLogError: If the table has no commit files
            MissingMetadataError: If no metadata was ever committed
            StorageUnavailableError: If the backend is unreachable
        """
        options = options or QueryOptions()
        snapshot = await self.snapshot(location, options.time_travel)
        state = snapshot.state
        if state.metadata is None:
            raise MissingMetadataError(location)

        columns = columns_or_empty(state.metadata)
        files = self._ordered_files(state)

        semaphore = asyncio.Semaphore(self.query_config.max_concurrent_reads)
        backend = snapshot.resolved.backend

        async def read_one(add: AddFile) -> list[Row]:
            async with semaphore:
                try:
                    path = _data_path(snapshot.resolved.base_path, add.path, FileDecodeError)
                    return await self.reader.read_rows(backend, path)
                except FileDecodeError as e:
                    logger.error(
                        "Skipping undecodable data file",
                        extra={"location": location, "path": add.path, "error": e.message},
                    )
                    return []

        per_file = await asyncio.gather(*(read_one(add) for add in files))
        rows = [row for file_rows in per_file for row in file_rows]

        page, has_more = slice_rows(rows, options.offset, options.limit)
        logger.info(
            "Table query completed",
            extra={
                "location": location,
                "version": state.version,
                "files": len(files),
                "total_rows": len(rows),
                "returned_rows": len(page),
            },
        )
        return QueryResult(
            columns=columns,
            rows=page,
            total_rows=len(rows),
            has_more=has_more,
            version=state.version,
        )

    # --- Metadata --------------------------------------------------------

    async def table_version(
        self, location: str, time_travel: TimeTravel | None = None
    ) -> int:
        """Resolved version of a table."""
        return (await self.snapshot(location, time_travel)).state.version

    async def table_metadata(
        self, location: str, time_travel: TimeTravel | None = None
    ) -> dict[str, Any]:
        """Table metadata summary.

        Raises:
            MissingMetadataError: If no metadata was ever committed
        """
        state = (await self.snapshot(location, time_travel)).state
        metadata = state.metadata
        if metadata is None:
            raise MissingMetadataError(location)
        return {
            "id": metadata.id,
            "name": metadata.name,
            "description": metadata.description,
            "columns": [c.to_dict() for c in columns_or_empty(metadata)],
            "version": state.version,
            "createdTime": metadata.created_time,
            "partitionColumns": metadata.partition_columns,
        }

    async def table_stats(self, location: str) -> TableStats:
        """Aggregate statistics over the latest active files."""
        return (await self.snapshot(location)).stats

    async def validate_table(self, location: str) -> ValidationResult:
        """Check that a location holds a readable table. Never raises."""
        try:
            snapshot = await self.snapshot(location)
        except SharingError as e:
            return ValidationResult(valid=False, error=e.message)
        except Exception as e:
            logger.warning(
                "Table validation failed", extra={"location": location, "error": str(e)}
            )
            return ValidationResult(valid=False, error=str(e))

        state = snapshot.state
        if state.metadata is None:
            return ValidationResult(valid=False, error=MissingMetadataError(location).message)

        return ValidationResult(
            valid=True,
            metadata={
                "name": state.metadata.name,
                "columns": [c.to_dict() for c in columns_or_empty(state.metadata)],
                "rowCount": snapshot.stats.num_records,
            },
        )

    # --- Manifests -------------------------------------------------------

    def _expiration_ms(self) -> int:
        return int(time.time() * 1000) + self.signing_config.url_ttl_seconds * 1000

    async def _sign(self, resolved: ResolvedLocation, relative_path: str) -> str | None:
        try:
            full_path = _data_path(resolved.base_path, relative_path, SignedUrlError)
            return await resolved.backend.generate_presigned_url(
                full_path, self.signing_config.url_ttl_seconds
            )
        except SignedUrlError as e:
            logger.warning(
                "Skipping file without signed URL",
                extra={"location": resolved.location, "path": relative_path, "error": e.message},
            )
            return None

    async def file_manifest(self, snapshot: Snapshot) -> AsyncIterator[SignedFile]:
        """Yield a signed file entry per active file, skipping signing failures."""
        expiration = self._expiration_ms()
        for add in self._ordered_files(snapshot.state):
            url = await self._sign(snapshot.resolved, add.path)
            if url is None:
                continue
            yield SignedFile(
                url=url,
                id=add.path,
                size=add.size,
                stats=add.stats,
                partition_values=add.partition_values,
                expiration_timestamp=expiration,
            )

    async def change_manifest(self, feed: ChangeFeed) -> AsyncIterator[SignedFile]:
        """Yield a signed entry per change record, skipping signing failures."""
        expiration = self._expiration_ms()
        record: ChangeRecord
        for record in feed.changes.records:
            url = await self._sign(feed.resolved, record.path)
            if url is None:
                continue
            yield SignedFile(
                url=url,
                id=record.path,
                size=record.size,
                stats=record.stats,
                partition_values=record.partition_values,
                version=record.version,
                timestamp=record.timestamp,
                expiration_timestamp=expiration,
                change_type=record.change_type,
            )
