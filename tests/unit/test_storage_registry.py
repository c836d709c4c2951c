"""
Unit tests for location parsing, the backend registry and the in-memory backend.
"""

import pytest
from botocore.exceptions import ClientError

from lakeshare.share_server.config import ServerConfig
from lakeshare.share_server.errors import SignedUrlError, StorageUnavailableError
from lakeshare.share_server.storage.base import (
    BackendKind,
    StorageBackend,
    join_path,
    join_table_path,
    parse_location,
)
from lakeshare.share_server.storage.local import LocalStorageBackend
from lakeshare.share_server.storage.memory import InMemoryStorageBackend
from lakeshare.share_server.storage.registry import BackendRegistry


class TestParseLocation:
    """Tests for parse_location()."""

    @pytest.mark.parametrize(
        "location,kind,path",
        [
            ("/data/orders", BackendKind.LOCAL, "/data/orders"),
            ("./orders", BackendKind.LOCAL, "./orders"),
            ("file:///data/orders", BackendKind.LOCAL, "/data/orders"),
            ("s3://lake/sales/orders", BackendKind.S3, "sales/orders"),
            ("s3a://lake/sales/orders", BackendKind.S3, "sales/orders"),
            ("gs://lake/orders", BackendKind.GCS, "orders"),
            ("memory://lake/tables/orders", BackendKind.MEMORY, "tables/orders"),
        ],
    )
    def test_kinds(self, location, kind, path):
        parsed = parse_location(location)
        assert parsed.kind == kind
        assert parsed.path == path

    def test_bucket(self):
        parsed = parse_location("s3://lake/sales/orders")
        assert parsed.bucket == "lake"
        assert parsed.cache_key == "s3:lake"

    def test_azure_full(self):
        parsed = parse_location("abfss://data@acct.dfs.core.windows.net/sales/orders")

        assert parsed.kind == BackendKind.AZURE
        assert parsed.container == "data"
        assert parsed.account == "acct"
        assert parsed.path == "sales/orders"

    def test_azure_without_account(self):
        parsed = parse_location("wasbs://data/sales/orders")

        assert parsed.container == "data"
        assert parsed.account is None
        assert parsed.path == "sales/orders"

    def test_local_cache_key(self):
        assert parse_location("/a").cache_key == parse_location("./b").cache_key == "local:local"


class TestJoinPath:
    def test_join(self):
        assert join_path("tables/orders", "_delta_log", "0.json") == "tables/orders/_delta_log/0.json"

    def test_empty_base(self):
        assert join_path("", "part-0.json") == "part-0.json"


class TestJoinTablePath:
    def test_relative(self):
        assert join_table_path("tables/orders", "p=1/part-0.json") == "tables/orders/p=1/part-0.json"

    def test_inner_dots_normalized(self):
        assert join_table_path("tables/orders", "a/../part-0.json") == "tables/orders/part-0.json"

    @pytest.mark.parametrize(
        "path", ["/etc/passwd", "../secret.json", "a/../../secret.json", "..", "s3://other/x", ""]
    )
    def test_escaping_paths_rejected(self, path):
        with pytest.raises(ValueError):
            join_table_path("tables/orders", path)


class TestBackendRegistry:
    """Tests for BackendRegistry."""

    def test_resolve_registered_memory_backend(self, registry, backend):
        resolved = registry.resolve("memory://lake/tables/orders")

        assert resolved.backend is backend
        assert resolved.base_path == "tables/orders"
        assert resolved.location == "memory://lake/tables/orders"

    def test_unregistered_memory_backend(self, registry):
        with pytest.raises(StorageUnavailableError):
            registry.resolve("memory://other/t")

    def test_local_backend_cached(self, registry):
        first = registry.resolve("/data/a").backend
        second = registry.resolve("/data/b").backend

        assert isinstance(first, LocalStorageBackend)
        assert first is second

    def test_local_download_prefix_follows_http_prefix(self, registry):
        backend = registry.resolve("/data/a").backend
        assert backend.download_prefix == "/delta-sharing"

    @pytest.mark.asyncio
    async def test_close_clears_cache(self, registry, backend):
        registry.resolve("/data/a")
        assert len(registry) == 2

        await registry.close()

        assert len(registry) == 0
        assert backend.is_closed


class TestInMemoryStorageBackend:
    """Tests for InMemoryStorageBackend."""

    def test_satisfies_protocol(self, backend):
        assert isinstance(backend, StorageBackend)

    @pytest.mark.asyncio
    async def test_list_immediate_children(self, backend):
        backend.put_text("t/_delta_log/0.json", "{}")
        backend.put_text("t/_delta_log/sub/x.json", "{}")
        backend.put_text("t/part.json", "[]")

        assert await backend.list_files("t/_delta_log") == ["0.json"]
        assert await backend.list_files("/t/") == ["part.json"]

    @pytest.mark.asyncio
    async def test_exists_directory_prefix(self, backend):
        backend.put_text("t/_delta_log/0.json", "{}")
        assert await backend.exists("t/_delta_log")
        assert not await backend.exists("t/other")

    @pytest.mark.asyncio
    async def test_missing_object(self, backend):
        with pytest.raises(FileNotFoundError):
            await backend.read_file("nope")

    @pytest.mark.asyncio
    async def test_simulated_outage(self, backend):
        backend.put_text("t/a.json", "[]")
        backend.fail_reads.add("t/a.json")

        with pytest.raises(StorageUnavailableError):
            await backend.read_file("t/a.json")

    @pytest.mark.asyncio
    async def test_presign(self, backend):
        backend.put_text("t/a.json", "[]")

        url = await backend.generate_presigned_url("t/a.json", 60)

        assert url.startswith("memory://lake/t/a.json?expires=")

    @pytest.mark.asyncio
    async def test_presign_failure(self, backend):
        backend.put_text("t/a.json", "[]")
        backend.fail_signing.add("t/a.json")

        with pytest.raises(SignedUrlError):
            await backend.generate_presigned_url("t/a.json")


class TestCreateBackendCloud:
    """Cloud backends are constructed lazily without touching the network."""

    def test_s3_backend_created(self, tokens):
        registry = BackendRegistry(ServerConfig(), tokens)
        backend = registry.resolve("s3://lake/orders").backend
        assert backend.name == "s3:lake"


class TestS3ErrorTranslation:
    """Per-object S3 errors versus outages."""

    @pytest.fixture
    def s3(self, tokens):
        return BackendRegistry(ServerConfig(), tokens).resolve("s3://lake/orders").backend

    @staticmethod
    def client_error(code):
        return ClientError({"Error": {"Code": code, "Message": code}}, "GetObject")

    def test_missing_object(self, s3):
        assert isinstance(s3._translate_error(self.client_error("NoSuchKey"), "k"), FileNotFoundError)

    @pytest.mark.parametrize("code", ["AccessDenied", "403"])
    def test_denied_object(self, s3, code):
        assert isinstance(s3._translate_error(self.client_error(code), "k"), PermissionError)

    def test_denied_listing_is_outage(self, s3):
        error = s3._translate_error(self.client_error("AccessDenied"), "k/", per_object=False)
        assert isinstance(error, StorageUnavailableError)

    def test_other_errors_are_outages(self, s3):
        error = s3._translate_error(self.client_error("InternalError"), "k")
        assert isinstance(error, StorageUnavailableError)
