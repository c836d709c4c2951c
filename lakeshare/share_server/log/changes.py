"""
Change Data Feed extraction.

Walks the commit files once, emitting one ChangeRecord per add/remove
action in every commit inside the requested window.

Window rules:
    - version range if either version bound is set, else timestamp range if
      either timestamp bound is set, else every commit
    - foundStart latches once a commit reaches the start bound (a missing
      start bound latches on the first commit)
    - a commit is included while foundStart holds and it is within the end
      bound; the first commit past the end bound stops the walk
    - under a timestamp range a commit without a commitInfo timestamp cannot
      be compared, so it is included and latches foundStart

An add whose path contains the `_change_data/` segment reclassifies the
most recently emitted record as `cdf`, provided that record has the exact
same path.

Invariants:
    - Records are never deduplicated: add then remove of one path yields
      two records
    - start_version/end_version are the lowest/highest included versions,
      0 when nothing matched
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import InvalidRequestError
from ..storage.base import StorageBackend
from .actions import TableMetadata, commit_timestamp
from .listing import list_commit_files, parse_timestamp_ms, read_commit

logger = logging.getLogger(__name__)

CHANGE_DATA_MARKER = "_change_data/"


class ChangeType(Enum):
    """Kind of file change."""

    ADD = "add"
    REMOVE = "remove"
    CDF = "cdf"


@dataclass
class ChangeRecord:
    """One file-level change tagged with its originating commit."""

    path: str
    size: int
    version: int
    timestamp: int
    change_type: ChangeType
    partition_values: dict[str, str] | None = None
    stats: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "path": self.path,
            "size": self.size,
            "version": self.version,
            "timestamp": self.timestamp,
            "changeType": self.change_type.value,
        }
        if self.partition_values is not None:
            data["partitionValues"] = self.partition_values
        if self.stats is not None:
            data["stats"] = self.stats
        return data


@dataclass(frozen=True)
class ChangeQuery:
    """A change window, by version or by timestamp (epoch ms)."""

    starting_version: int | None = None
    ending_version: int | None = None
    starting_timestamp_ms: int | None = None
    ending_timestamp_ms: int | None = None

    @classmethod
    def from_request(
        cls,
        starting_version: int | None = None,
        ending_version: int | None = None,
        starting_timestamp: str | int | None = None,
        ending_timestamp: str | int | None = None,
    ) -> ChangeQuery:
        """Build a window from request parameters.

        Raises:
            InvalidRequestError: On negative versions or unparseable timestamps
        """
        for name, value in (
            ("startingVersion", starting_version),
            ("endingVersion", ending_version),
        ):
            if value is not None and value < 0:
                raise InvalidRequestError(f"{name} must be >= 0", field_name=name)
        return cls(
            starting_version=starting_version,
            ending_version=ending_version,
            starting_timestamp_ms=parse_timestamp_ms(starting_timestamp, "startingTimestamp"),
            ending_timestamp_ms=parse_timestamp_ms(ending_timestamp, "endingTimestamp"),
        )

    @property
    def by_version(self) -> bool:
        return self.starting_version is not None or self.ending_version is not None

    @property
    def by_timestamp(self) -> bool:
        return not self.by_version and (
            self.starting_timestamp_ms is not None or self.ending_timestamp_ms is not None
        )


@dataclass
class ChangeSet:
    """Result of a change extraction."""

    metadata: TableMetadata | None = None
    records: list[ChangeRecord] = field(default_factory=list)
    start_version: int = 0
    end_version: int = 0


class ChangeDataFeedExtractor:
    """Extracts file-level changes between two points in a table's history."""

    async def extract(
        self,
        backend: StorageBackend,
        base_path: str,
        query: ChangeQuery | None = None,
        location: str | None = None,
    ) -> ChangeSet:
        """Collect changes inside the query window.

        Raises:
            MissingLogError: If the table has no commit files
        """
        query = query or ChangeQuery()
        commits = await list_commit_files(backend, base_path, location)

        result = ChangeSet()
        first_version: int | None = None
        last_version: int | None = None
        found_start = False

        for commit in commits:
            entries = await read_commit(backend, commit)
            timestamp = commit_timestamp(entries)

            if query.by_version:
                if query.starting_version is None or commit.version >= query.starting_version:
                    found_start = True
                if query.ending_version is not None and commit.version > query.ending_version:
                    break
                included = found_start
            elif query.by_timestamp:
                if timestamp is not None:
                    if (
                        query.starting_timestamp_ms is None
                        or timestamp >= query.starting_timestamp_ms
                    ):
                        found_start = True
                    if (
                        query.ending_timestamp_ms is not None
                        and timestamp > query.ending_timestamp_ms
                    ):
                        break
                    included = found_start
                else:
                    # No time to compare against: included, and opens the window
                    found_start = True
                    included = True
            else:
                included = True

            if not included:
                continue

            if first_version is None:
                first_version = commit.version
            last_version = commit.version

            for entry in entries:
                if entry.metadata is not None:
                    result.metadata = entry.metadata
                elif entry.add is not None:
                    add = entry.add
                    result.records.append(
                        ChangeRecord(
                            path=add.path,
                            size=add.size,
                            version=commit.version,
                            timestamp=add.modification_time or timestamp or 0,
                            change_type=ChangeType.ADD,
                            partition_values=add.partition_values,
                            stats=add.stats,
                        )
                    )
                    if CHANGE_DATA_MARKER in add.path:
                        last = result.records[-1]
                        if last.path == add.path:
                            last.change_type = ChangeType.CDF
                elif entry.remove is not None:
                    remove = entry.remove
                    result.records.append(
                        ChangeRecord(
                            path=remove.path,
                            size=remove.size or 0,
                            version=commit.version,
                            timestamp=remove.deletion_timestamp or timestamp or 0,
                            change_type=ChangeType.REMOVE,
                            partition_values=remove.partition_values,
                        )
                    )

        result.start_version = first_version if first_version is not None else 0
        result.end_version = last_version if last_version is not None else 0

        logger.debug(
            "Extracted table changes",
            extra={
                "location": location or base_path,
                "records": len(result.records),
                "start_version": result.start_version,
                "end_version": result.end_version,
            },
        )
        return result
