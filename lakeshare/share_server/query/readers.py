"""
Data file content readers.

Decodes a single data file into a list of JSON-ready row dicts, dispatching
on the file extension:
    .json     -> a JSON array of records
    .parquet  -> columnar, decoded with pyarrow on the default executor

Invariants:
    - Every decode problem surfaces as FileDecodeError; callers skip the file
    - StorageUnavailableError propagates untouched (the backend is down, not
      the file)
    - Returned values are JSON-serializable
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from decimal import Decimal
from typing import Any

import pyarrow as pa
import pyarrow.parquet as pq

from ..errors import FileDecodeError
from ..storage.base import StorageBackend

logger = logging.getLogger(__name__)

Row = dict[str, Any]


def normalize_value(value: Any) -> Any:
    """Convert a decoded Parquet value into a JSON-friendly one."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return value.total_seconds()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {str(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        # Map columns decode as lists of (key, value) tuples
        if value and all(isinstance(v, tuple) and len(v) == 2 for v in value):
            return {str(k): normalize_value(v) for k, v in value}
        return [normalize_value(v) for v in value]
    return str(value)


def _decode_parquet(data: bytes) -> list[Row]:
    table = pq.read_table(pa.BufferReader(data))
    return [
        {name: normalize_value(v) for name, v in row.items()} for row in table.to_pylist()
    ]


class FileContentReader:
    """Reads data files into rows.

    Example:
        >>> reader = FileContentReader()
        >>> rows = await reader.read_rows(backend, "orders/part-00000.parquet")
    """

    async def read_rows(self, backend: StorageBackend, path: str) -> list[Row]:
        """Decode one data file.

        Raises:
            FileDecodeError: If the file is missing, unreadable, unsupported or
                undecodable
            StorageUnavailableError: If the backend is unreachable
        """
        lowered = path.lower()
        try:
            if lowered.endswith(".json"):
                return await self._read_json(backend, path)
            if lowered.endswith(".parquet"):
                return await self._read_parquet(backend, path)
        except FileNotFoundError as e:
            raise FileDecodeError(path, f"file not found: {e}") from e
        except OSError as e:
            # Per-file access problems (permissions, directories); outages are
            # StorageUnavailableError, which is not an OSError
            raise FileDecodeError(path, f"file not readable: {e}") from e
        except (ValueError, UnicodeDecodeError, pa.ArrowException) as e:
            raise FileDecodeError(path, str(e)) from e

        raise FileDecodeError(path, "unsupported file format")

    async def _read_json(self, backend: StorageBackend, path: str) -> list[Row]:
        data = await backend.read_json(path)
        if not isinstance(data, list):
            raise FileDecodeError(path, "expected a JSON array of records")
        rows = [row for row in data if isinstance(row, dict)]
        if len(rows) != len(data):
            logger.warning(
                "Ignoring non-object entries in JSON data file",
                extra={"path": path, "ignored": len(data) - len(rows)},
            )
        return rows

    async def _read_parquet(self, backend: StorageBackend, path: str) -> list[Row]:
        data = await backend.read_file(path)
        return await asyncio.get_running_loop().run_in_executor(None, _decode_parquet, data)
