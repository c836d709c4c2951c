"""
Unit tests for FileContentReader.

Tests cover:
- JSON array data files
- Parquet data files (written with pyarrow)
- Decode and per-file access failures surfacing as FileDecodeError
"""

import datetime
from decimal import Decimal

import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from lakeshare.share_server.errors import FileDecodeError, StorageUnavailableError
from lakeshare.share_server.query.readers import FileContentReader, normalize_value
from lakeshare.share_server.storage.local import LocalStorageBackend


def parquet_bytes(table: pa.Table) -> bytes:
    sink = pa.BufferOutputStream()
    pq.write_table(table, sink)
    return sink.getvalue().to_pybytes()


@pytest.fixture
def reader():
    return FileContentReader()


class TestJsonFiles:
    """Tests for .json data files."""

    @pytest.mark.asyncio
    async def test_rows(self, reader, backend):
        backend.put_json("t/part-0.json", [{"id": 1}, {"id": 2}])
        assert await reader.read_rows(backend, "t/part-0.json") == [{"id": 1}, {"id": 2}]

    @pytest.mark.asyncio
    async def test_non_object_entries_dropped(self, reader, backend):
        backend.put_json("t/part-0.json", [{"id": 1}, 5, "x"])
        assert await reader.read_rows(backend, "t/part-0.json") == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_not_an_array(self, reader, backend):
        backend.put_json("t/part-0.json", {"id": 1})
        with pytest.raises(FileDecodeError):
            await reader.read_rows(backend, "t/part-0.json")

    @pytest.mark.asyncio
    async def test_invalid_json(self, reader, backend):
        backend.put_text("t/part-0.json", "[{oops")
        with pytest.raises(FileDecodeError) as exc_info:
            await reader.read_rows(backend, "t/part-0.json")
        assert exc_info.value.path == "t/part-0.json"

    @pytest.mark.asyncio
    async def test_missing_file(self, reader, backend):
        with pytest.raises(FileDecodeError):
            await reader.read_rows(backend, "t/missing.json")

    @pytest.mark.asyncio
    async def test_access_denied(self, reader, backend):
        backend.put_json("t/part-0.json", [{"id": 1}])
        backend.deny_reads.add("t/part-0.json")
        with pytest.raises(FileDecodeError, match="not readable"):
            await reader.read_rows(backend, "t/part-0.json")

    @pytest.mark.asyncio
    async def test_directory_on_local_disk(self, reader, tokens, tmp_path):
        (tmp_path / "part-0.json").mkdir()
        local = LocalStorageBackend(tokens, root=str(tmp_path))
        with pytest.raises(FileDecodeError):
            await reader.read_rows(local, "part-0.json")

    @pytest.mark.asyncio
    async def test_outage_propagates(self, reader, backend):
        backend.put_json("t/part-0.json", [])
        backend.fail_reads.add("t/part-0.json")
        with pytest.raises(StorageUnavailableError):
            await reader.read_rows(backend, "t/part-0.json")


class TestParquetFiles:
    """Tests for .parquet data files."""

    @pytest.mark.asyncio
    async def test_rows(self, reader, backend):
        table = pa.table({"id": [1, 2], "name": ["a", None]})
        backend.put_bytes("t/part-0.parquet", parquet_bytes(table))

        rows = await reader.read_rows(backend, "t/part-0.parquet")

        assert rows == [{"id": 1, "name": "a"}, {"id": 2, "name": None}]

    @pytest.mark.asyncio
    async def test_values_normalized(self, reader, backend):
        table = pa.table(
            {
                "day": pa.array([datetime.date(2024, 1, 2)]),
                "amount": pa.array([Decimal("1.50")], type=pa.decimal128(5, 2)),
                "raw": pa.array([b"hi"]),
            }
        )
        backend.put_bytes("t/part-0.PARQUET", parquet_bytes(table))

        (row,) = await reader.read_rows(backend, "t/part-0.PARQUET")

        assert row == {"day": "2024-01-02", "amount": 1.5, "raw": "hi"}

    @pytest.mark.asyncio
    async def test_corrupt(self, reader, backend):
        backend.put_bytes("t/part-0.parquet", b"definitely not parquet")
        with pytest.raises(FileDecodeError):
            await reader.read_rows(backend, "t/part-0.parquet")


class TestUnsupported:
    @pytest.mark.asyncio
    async def test_unknown_extension(self, reader, backend):
        backend.put_text("t/part-0.csv", "id\n1\n")
        with pytest.raises(FileDecodeError, match="unsupported"):
            await reader.read_rows(backend, "t/part-0.csv")


class TestNormalizeValue:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, None),
            (3, 3),
            (b"\xff", "�"),
            (datetime.datetime(2024, 1, 2, 3, 4, 5), "2024-01-02T03:04:05"),
            (datetime.timedelta(seconds=90), 90.0),
            ([("k", 1), ("j", 2)], {"k": 1, "j": 2}),
            ([1, [2, 3]], [1, [2, 3]]),
            ({"nested": Decimal("2.5")}, {"nested": 2.5}),
        ],
    )
    def test_values(self, value, expected):
        assert normalize_value(value) == expected
