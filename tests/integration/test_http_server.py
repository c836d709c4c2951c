"""
Integration tests for the Delta Sharing HTTP API.

Tests cover:
- Share/schema/table listings and pagination
- Table version, metadata, query (JSON and NDJSON) and changes
- Local file downloads through signed tokens
- Error mapping to status codes
"""

import json

import pytest
from aiohttp import test_utils

from lakeshare.share_server.api.http_server import (
    TABLE_VERSION_HEADER,
    SharingService,
    create_http_app,
    effective_limit,
)
from lakeshare.share_server.catalog import StaticShareCatalog
from lakeshare.share_server.config import QueryConfig, ServerConfig
from lakeshare.share_server.query.orchestrator import QueryOrchestrator

from ..helpers import LocalTable, add_action, commit_info, metadata_action, remove_action

PREFIX = "/delta-sharing"
TABLES = f"{PREFIX}/shares/sales/schemas/default/tables"
NDJSON = {"Accept": "application/x-ndjson"}


def parse_ndjson(text):
    return [json.loads(line) for line in text.splitlines() if line]


@pytest.fixture
def orders(table):
    table.put_rows("part-0.json", [{"id": 1}, {"id": 2}, {"id": 3}])
    table.put_rows("part-1.json", [{"id": 4}])
    table.commit(
        0,
        metadata_action(),
        add_action("part-0.json", size=30, stats='{"numRecords": 3}'),
        commit_info(1000),
    )
    table.commit(1, add_action("part-1.json", size=10), commit_info(2000))
    table.commit(2, remove_action("part-0.json"), commit_info(3000))
    return table


@pytest.fixture
def local_table(tmp_path):
    local = LocalTable(tmp_path / "events")
    local.put_rows("part-0.json", [{"id": 9}])
    local.commit(0, metadata_action(table_id="ev-1", name="events"), add_action("part-0.json"))
    return local


@pytest.fixture
def service(orders, local_table, registry, tokens):
    catalog = StaticShareCatalog.from_dict(
        {
            "shares": [
                {
                    "name": "sales",
                    "id": "share-1",
                    "max_rows_per_query": 2,
                    "schemas": [
                        {
                            "name": "default",
                            "tables": [
                                {"name": "orders", "location": orders.location, "id": "cat-1"},
                                {"name": "events", "location": local_table.location},
                                {"name": "broken", "location": "memory://lake/tables/none"},
                            ],
                        }
                    ],
                },
                {"name": "marketing"},
                {"name": "ops"},
            ]
        }
    )
    config = ServerConfig()
    return SharingService(
        catalog=catalog,
        orchestrator=QueryOrchestrator(registry, config.query, config.signing),
        tokens=tokens,
        config=config,
    )


@pytest.fixture
async def client(service):
    async with test_utils.TestClient(
        test_utils.TestServer(create_http_app(service))
    ) as test_client:
        yield test_client


class TestListings:
    """Tests for catalog listing routes."""

    @pytest.mark.asyncio
    async def test_list_shares(self, client):
        resp = await client.get(f"{PREFIX}/shares")

        assert resp.status == 200
        body = await resp.json()
        assert [s["name"] for s in body["items"]] == ["sales", "marketing", "ops"]
        assert "nextPageToken" not in body

    @pytest.mark.asyncio
    async def test_list_shares_paginated(self, client):
        resp = await client.get(f"{PREFIX}/shares", params={"maxResults": "2"})
        first = await resp.json()
        assert [s["name"] for s in first["items"]] == ["sales", "marketing"]

        resp = await client.get(
            f"{PREFIX}/shares",
            params={"maxResults": "2", "pageToken": first["nextPageToken"]},
        )
        second = await resp.json()
        assert [s["name"] for s in second["items"]] == ["ops"]
        assert "nextPageToken" not in second

    @pytest.mark.asyncio
    async def test_get_share(self, client):
        resp = await client.get(f"{PREFIX}/shares/sales")
        assert await resp.json() == {"share": {"name": "sales", "id": "share-1"}}

    @pytest.mark.asyncio
    async def test_unknown_share(self, client):
        resp = await client.get(f"{PREFIX}/shares/nope")

        assert resp.status == 404
        assert (await resp.json())["error_code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_schemas(self, client):
        resp = await client.get(f"{PREFIX}/shares/sales/schemas")
        assert (await resp.json())["items"] == [{"name": "default", "share": "sales"}]

    @pytest.mark.asyncio
    async def test_list_tables(self, client):
        resp = await client.get(TABLES)
        names = [t["name"] for t in (await resp.json())["items"]]
        assert names == ["orders", "events", "broken"]

    @pytest.mark.asyncio
    async def test_all_tables(self, client):
        resp = await client.get(f"{PREFIX}/shares/sales/all-tables")
        items = (await resp.json())["items"]
        assert items[0] == {
            "name": "orders",
            "schema": "default",
            "share": "sales",
            "shareId": "share-1",
            "id": "cat-1",
        }

    @pytest.mark.asyncio
    async def test_cors_headers(self, client):
        resp = await client.get(f"{PREFIX}/shares", headers={"Origin": "https://app.example"})

        assert resp.headers["Access-Control-Allow-Origin"] == "https://app.example"
        assert TABLE_VERSION_HEADER in resp.headers["Access-Control-Expose-Headers"]

    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get(f"{PREFIX}/health")
        body = await resp.json()
        assert body["status"] == "healthy"
        assert body["shares"] == 3


class TestTableVersion:
    """Tests for the version route."""

    @pytest.mark.asyncio
    async def test_latest(self, client):
        resp = await client.get(f"{TABLES}/orders/version")

        assert resp.status == 200
        assert await resp.json() == {"version": 2}
        assert resp.headers[TABLE_VERSION_HEADER] == "2"

    @pytest.mark.asyncio
    async def test_as_of_timestamp(self, client):
        resp = await client.get(
            f"{TABLES}/orders/version",
            params={"startingTimestamp": "1970-01-01T00:00:01.500Z"},
        )
        assert await resp.json() == {"version": 0}

    @pytest.mark.asyncio
    async def test_bad_timestamp(self, client):
        resp = await client.get(
            f"{TABLES}/orders/version", params={"startingTimestamp": "soon"}
        )
        assert resp.status == 400
        assert (await resp.json())["error_code"] == "INVALID_REQUEST"

    @pytest.mark.asyncio
    async def test_missing_log(self, client):
        resp = await client.get(f"{TABLES}/broken/version")
        assert resp.status == 404
        assert (await resp.json())["error_code"] == "MISSING_LOG"


class TestTableMetadata:
    """Tests for the metadata route."""

    @pytest.mark.asyncio
    async def test_json(self, client):
        resp = await client.get(f"{TABLES}/orders/metadata")

        body = await resp.json()
        assert body["protocol"] == {"minReaderVersion": 1}
        assert body["metadata"]["id"] == "cat-1"
        assert body["metadata"]["name"] == "orders"
        assert body["metadata"]["numFiles"] == 1
        assert resp.headers[TABLE_VERSION_HEADER] == "2"

    @pytest.mark.asyncio
    async def test_ndjson(self, client):
        resp = await client.get(f"{TABLES}/orders/metadata", headers=NDJSON)

        lines = parse_ndjson(await resp.text())
        assert [list(line) for line in lines] == [["protocol"], ["metaData"]]


class TestQuery:
    """Tests for the query route."""

    @pytest.mark.asyncio
    async def test_rows_capped_by_share(self, client):
        resp = await client.post(f"{TABLES}/orders/query", json={"limitHint": 10})

        body = await resp.json()
        assert body["rows"] == [{"id": 4}]
        assert body["rowCount"] == 1
        assert body["hasMore"] is False
        assert body["accessInfo"] == {"maxRowsPerQuery": 2}
        assert resp.headers[TABLE_VERSION_HEADER] == "2"

    @pytest.mark.asyncio
    async def test_time_travel_and_paging(self, client):
        resp = await client.post(
            f"{TABLES}/orders/query", json={"version": 0, "offset": 1, "limitHint": 1}
        )

        body = await resp.json()
        assert body["rows"] == [{"id": 2}]
        assert body["hasMore"] is True
        assert resp.headers[TABLE_VERSION_HEADER] == "0"

    @pytest.mark.asyncio
    async def test_empty_body(self, client):
        resp = await client.post(f"{TABLES}/orders/query")
        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_invalid_body(self, client):
        resp = await client.post(f"{TABLES}/orders/query", json={"version": -1})
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_malformed_json(self, client):
        resp = await client.post(f"{TABLES}/orders/query", data="{nope")
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_ndjson_manifest(self, client):
        resp = await client.post(f"{TABLES}/orders/query", json={}, headers=NDJSON)

        assert resp.status == 200
        assert resp.headers["Content-Type"].startswith("application/x-ndjson")
        assert resp.headers[TABLE_VERSION_HEADER] == "2"
        lines = parse_ndjson(await resp.text())
        assert list(lines[0]) == ["protocol"]
        assert lines[1]["metaData"]["version"] == 2
        assert [line["file"]["id"] for line in lines[2:]] == ["part-1.json"]

    @pytest.mark.asyncio
    async def test_ndjson_manifest_as_of_version(self, client):
        resp = await client.post(f"{TABLES}/orders/query", json={"version": 1}, headers=NDJSON)

        files = [line["file"]["id"] for line in parse_ndjson(await resp.text())[2:]]
        assert files == ["part-0.json", "part-1.json"]


class TestChanges:
    """Tests for the changes route."""

    @pytest.mark.asyncio
    async def test_version_range(self, client):
        resp = await client.post(
            f"{TABLES}/orders/changes", json={"startingVersion": 1, "endingVersion": 2}
        )

        assert resp.status == 200
        assert resp.headers[TABLE_VERSION_HEADER] == "2"
        lines = parse_ndjson(await resp.text())
        assert list(lines[0]) == ["protocol"]
        assert lines[1]["metaData"]["id"] == "cat-1"
        changes = [(next(iter(line)), line[next(iter(line))]["id"]) for line in lines[2:]]
        assert changes == [("add", "part-1.json"), ("remove", "part-0.json")]

    @pytest.mark.asyncio
    async def test_unknown_table(self, client):
        resp = await client.post(f"{TABLES}/nope/changes", json={})
        assert resp.status == 404


class TestFileDownload:
    """Tests for local file downloads."""

    @pytest.mark.asyncio
    async def test_download_via_manifest_url(self, client):
        resp = await client.post(f"{TABLES}/events/query", json={}, headers=NDJSON)
        lines = parse_ndjson(await resp.text())
        url = lines[2]["file"]["url"]
        token = url.rsplit("/", 1)[1]

        download = await client.get(f"{PREFIX}/files/{token}")

        assert download.status == 200
        assert json.loads(await download.read()) == [{"id": 9}]
        assert "part-0.json" in download.headers["Content-Disposition"]

    @pytest.mark.asyncio
    async def test_unknown_token(self, client):
        resp = await client.get(f"{PREFIX}/files/not-a-token")

        assert resp.status == 403
        assert (await resp.json())["error_code"] == "FORBIDDEN"


class TestEffectiveLimit:
    @pytest.mark.parametrize(
        "hint,share_cap,expected",
        [
            (None, None, 1000),
            (50, None, 50),
            (50_000, None, 10000),
            (50, 20, 20),
            (10, 20, 10),
        ],
    )
    def test_limits(self, hint, share_cap, expected):
        assert effective_limit(hint, QueryConfig(), share_cap) == expected
