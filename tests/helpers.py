"""
Builders for Delta tables used across the test suite.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from lakeshare.share_server.storage.memory import InMemoryStorageBackend

SCHEMA_STRING = json.dumps(
    {
        "type": "struct",
        "fields": [
            {"name": "id", "type": "long", "nullable": False, "metadata": {}},
            {"name": "name", "type": "string", "nullable": True, "metadata": {}},
        ],
    }
)


def commit_name(version: int) -> str:
    return f"{version:020d}.json"


def metadata_action(
    table_id: str = "tbl-1",
    name: str | None = "orders",
    schema_string: str = SCHEMA_STRING,
    partition_columns: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "metaData": {
            "id": table_id,
            "name": name,
            "format": {"provider": "parquet", "options": {}},
            "schemaString": schema_string,
            "partitionColumns": partition_columns or [],
            "configuration": {},
            "createdTime": 1700000000000,
        }
    }


def add_action(
    path: str,
    size: int = 100,
    modification_time: int | None = None,
    stats: str | None = None,
    partition_values: dict[str, str] | None = None,
) -> dict[str, Any]:
    add: dict[str, Any] = {
        "path": path,
        "size": size,
        "partitionValues": partition_values or {},
        "dataChange": True,
    }
    if modification_time is not None:
        add["modificationTime"] = modification_time
    if stats is not None:
        add["stats"] = stats
    return {"add": add}


def remove_action(
    path: str, deletion_timestamp: int | None = None, size: int | None = None
) -> dict[str, Any]:
    remove: dict[str, Any] = {"path": path, "dataChange": True}
    if deletion_timestamp is not None:
        remove["deletionTimestamp"] = deletion_timestamp
    if size is not None:
        remove["size"] = size
    return {"remove": remove}


def commit_info(timestamp: int, operation: str = "WRITE") -> dict[str, Any]:
    return {"commitInfo": {"timestamp": timestamp, "operation": operation}}


def protocol_action(min_reader: int = 1, min_writer: int = 2) -> dict[str, Any]:
    return {"protocol": {"minReaderVersion": min_reader, "minWriterVersion": min_writer}}


def commit_text(*actions: dict[str, Any], raw_lines: tuple[str, ...] = ()) -> str:
    lines = [json.dumps(a) for a in actions]
    lines.extend(raw_lines)
    return "\n".join(lines) + "\n"


class MemoryTable:
    """A Delta table inside an InMemoryStorageBackend."""

    def __init__(self, backend: InMemoryStorageBackend, base_path: str = "tables/orders") -> None:
        self.backend = backend
        self.base_path = base_path

    @property
    def location(self) -> str:
        return f"memory://{self.backend.bucket}/{self.base_path}"

    def commit(
        self, version: int, *actions: dict[str, Any], raw_lines: tuple[str, ...] = ()
    ) -> None:
        self.backend.put_text(
            f"{self.base_path}/_delta_log/{commit_name(version)}",
            commit_text(*actions, raw_lines=raw_lines),
        )

    def put_rows(self, path: str, rows: list[dict[str, Any]]) -> None:
        self.backend.put_json(f"{self.base_path}/{path}", rows)

    def put_bytes(self, path: str, data: bytes) -> None:
        self.backend.put_bytes(f"{self.base_path}/{path}", data)


class LocalTable:
    """A Delta table on the local filesystem."""

    def __init__(self, root: Path) -> None:
        self.root = root
        (root / "_delta_log").mkdir(parents=True, exist_ok=True)

    @property
    def location(self) -> str:
        return str(self.root)

    def commit(
        self, version: int, *actions: dict[str, Any], raw_lines: tuple[str, ...] = ()
    ) -> None:
        (self.root / "_delta_log" / commit_name(version)).write_text(
            commit_text(*actions, raw_lines=raw_lines), encoding="utf-8"
        )

    def put_rows(self, path: str, rows: list[dict[str, Any]]) -> None:
        target = self.root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(rows), encoding="utf-8")

    def put_bytes(self, path: str, data: bytes) -> None:
        target = self.root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
