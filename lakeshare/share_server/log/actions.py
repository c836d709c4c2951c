"""
Delta log action records.

Each line of a commit file holds exactly one JSON object keyed by its
action kind: metaData, add, remove, commitInfo or protocol. Unknown kinds
(txn, domainMetadata, ...) are carried as LogEntry with no action set and
ignored by replay.

Invariants:
    - A malformed line never aborts parsing of its commit; parse_commit()
      skips it and logs a warning
    - Action dataclasses are immutable; replay only swaps references

How to change safely:
    - Add new fields with defaults so older logs keep parsing
    - to_dict() output is the wire form; keep key names in camelCase
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ..errors import MalformedActionError, MalformedSchemaError

logger = logging.getLogger(__name__)


def _require(payload: dict[str, Any], key: str, kind: str) -> Any:
    if key not in payload:
        raise MalformedActionError(f"{kind} action is missing '{key}'")
    return payload[key]


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class TableMetadata:
    """Table metadata (the metaData action).

    A later metaData action replaces the previous one wholesale.
    """

    id: str
    schema_string: str
    name: str | None = None
    description: str | None = None
    format_provider: str = "parquet"
    format_options: dict[str, str] = field(default_factory=dict)
    partition_columns: list[str] = field(default_factory=list)
    configuration: dict[str, str] = field(default_factory=dict)
    created_time: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TableMetadata:
        fmt = data.get("format") or {}
        return cls(
            id=str(_require(data, "id", "metaData")),
            schema_string=data.get("schemaString") or "",
            name=data.get("name"),
            description=data.get("description"),
            format_provider=fmt.get("provider", "parquet"),
            format_options=dict(fmt.get("options") or {}),
            partition_columns=list(data.get("partitionColumns") or []),
            configuration=dict(data.get("configuration") or {}),
            created_time=data.get("createdTime"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "format": {"provider": self.format_provider, "options": self.format_options},
            "schemaString": self.schema_string,
            "partitionColumns": self.partition_columns,
            "configuration": self.configuration,
            "createdTime": self.created_time,
        }


@dataclass(frozen=True)
class AddFile:
    """A data file added to the table (the add action)."""

    path: str
    size: int = 0
    partition_values: dict[str, str] = field(default_factory=dict)
    modification_time: int | None = None
    data_change: bool = True
    stats: str | None = None
    tags: dict[str, str] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AddFile:
        return cls(
            path=str(_require(data, "path", "add")),
            size=int(data.get("size") or 0),
            partition_values=dict(data.get("partitionValues") or {}),
            modification_time=data.get("modificationTime"),
            data_change=bool(data.get("dataChange", True)),
            stats=data.get("stats"),
            tags=data.get("tags"),
        )

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "path": self.path,
                "size": self.size,
                "partitionValues": self.partition_values,
                "modificationTime": self.modification_time,
                "dataChange": self.data_change,
                "stats": self.stats,
                "tags": self.tags,
            }
        )

    def parsed_stats(self) -> dict[str, Any] | None:
        """Stats JSON decoded, or None when absent or unparseable."""
        return parse_stats(self.stats)


@dataclass(frozen=True)
class RemoveFile:
    """A data file removed from the table (the remove action)."""

    path: str
    deletion_timestamp: int | None = None
    data_change: bool = True
    partition_values: dict[str, str] | None = None
    size: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoveFile:
        size = data.get("size")
        return cls(
            path=str(_require(data, "path", "remove")),
            deletion_timestamp=data.get("deletionTimestamp"),
            data_change=bool(data.get("dataChange", True)),
            partition_values=data.get("partitionValues"),
            size=int(size) if size is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "path": self.path,
                "deletionTimestamp": self.deletion_timestamp,
                "dataChange": self.data_change,
                "partitionValues": self.partition_values,
                "size": self.size,
            }
        )


@dataclass(frozen=True)
class CommitInfo:
    """Commit provenance (the commitInfo action).

    Only timestamp matters to the engine; the rest is kept for inspection.
    """

    timestamp: int | None = None
    operation: str | None = None
    operation_parameters: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommitInfo:
        timestamp = data.get("timestamp")
        known = {"timestamp", "operation", "operationParameters"}
        return cls(
            timestamp=int(timestamp) if isinstance(timestamp, (int, float)) else None,
            operation=data.get("operation"),
            operation_parameters=dict(data.get("operationParameters") or {}),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass(frozen=True)
class ProtocolVersion:
    """Reader/writer protocol requirements (the protocol action)."""

    min_reader_version: int = 1
    min_writer_version: int = 2

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProtocolVersion:
        return cls(
            min_reader_version=int(data.get("minReaderVersion", 1)),
            min_writer_version=int(data.get("minWriterVersion", 2)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"minReaderVersion": self.min_reader_version}


@dataclass(frozen=True)
class LogEntry:
    """One parsed line of a commit file; at most one action is set."""

    metadata: TableMetadata | None = None
    add: AddFile | None = None
    remove: RemoveFile | None = None
    commit_info: CommitInfo | None = None
    protocol: ProtocolVersion | None = None


@dataclass(frozen=True)
class Column:
    """A top-level table column."""

    name: str
    type: str
    nullable: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type, "nullable": self.nullable}


def parse_log_line(line: str) -> LogEntry:
    """Parse a single commit line into a LogEntry.

    Raises:
        MalformedActionError: If the line is not a JSON object or an action
            payload is missing a required field
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedActionError(f"Invalid JSON: {e}", line=line) from e

    if not isinstance(data, dict):
        raise MalformedActionError("Log line is not a JSON object", line=line)

    try:
        if "add" in data:
            return LogEntry(add=AddFile.from_dict(data["add"]))
        if "remove" in data:
            return LogEntry(remove=RemoveFile.from_dict(data["remove"]))
        if "metaData" in data:
            return LogEntry(metadata=TableMetadata.from_dict(data["metaData"]))
        if "commitInfo" in data:
            return LogEntry(commit_info=CommitInfo.from_dict(data["commitInfo"]))
        if "protocol" in data:
            return LogEntry(protocol=ProtocolVersion.from_dict(data["protocol"]))
    except MalformedActionError as e:
        raise MalformedActionError(e.message, line=line) from e
    except (TypeError, ValueError, AttributeError) as e:
        raise MalformedActionError(f"Invalid action payload: {e}", line=line) from e

    return LogEntry()


def parse_commit(text: str, version: int | None = None) -> list[LogEntry]:
    """Parse every line of a commit file, skipping malformed lines.

    Args:
        text: Commit file content
        version: Commit version (for log context only)

    Returns:
        Parsed entries in line order
    """
    entries = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            entries.append(parse_log_line(line))
        except MalformedActionError as e:
            logger.warning(
                "Skipping malformed log line",
                extra={"version": version, "line_no": line_no, "error": e.message},
            )
    return entries


def commit_timestamp(entries: list[LogEntry]) -> int | None:
    """The commitInfo timestamp of a commit, if it has one."""
    for entry in entries:
        if entry.commit_info is not None and entry.commit_info.timestamp is not None:
            return entry.commit_info.timestamp
    return None


def parse_stats(stats: str | None) -> dict[str, Any] | None:
    """Decode an add action's stats string; None when absent or corrupt."""
    if not stats:
        return None
    try:
        parsed = json.loads(stats)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _type_name(field_type: Any) -> str:
    if isinstance(field_type, str):
        return field_type
    return json.dumps(field_type, separators=(",", ":"))


def parse_schema(schema_string: str) -> list[Column]:
    """Parse a Spark-style struct schema string into columns.

    Non-primitive types are rendered as compact JSON.

    Raises:
        MalformedSchemaError: If the string is not a struct schema
    """
    try:
        schema = json.loads(schema_string)
        return [
            Column(
                name=f["name"],
                type=_type_name(f["type"]),
                nullable=bool(f.get("nullable", True)),
            )
            for f in schema["fields"]
        ]
    except (json.JSONDecodeError, TypeError, KeyError) as e:
        raise MalformedSchemaError(f"Invalid schema string: {e}") from e


def columns_or_empty(metadata: TableMetadata | None) -> list[Column]:
    """Columns of a table, degrading to [] on a corrupt schema."""
    if metadata is None:
        return []
    try:
        return parse_schema(metadata.schema_string)
    except MalformedSchemaError as e:
        logger.warning(
            "Failed to parse table schema",
            extra={"table_id": metadata.id, "error": e.message},
        )
        return []
