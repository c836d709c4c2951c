"""
HTTP server implementation for LakeShare.

This module serves the Delta Sharing REST protocol over aiohttp:

    GET  {prefix}/shares
    GET  {prefix}/shares/{share}
    GET  {prefix}/shares/{share}/schemas
    GET  {prefix}/shares/{share}/schemas/{schema}/tables
    GET  {prefix}/shares/{share}/all-tables
    GET  {prefix}/shares/{share}/schemas/{schema}/tables/{table}/version
    GET  {prefix}/shares/{share}/schemas/{schema}/tables/{table}/metadata
    POST {prefix}/shares/{share}/schemas/{schema}/tables/{table}/query
    POST {prefix}/shares/{share}/schemas/{schema}/tables/{table}/changes
    GET  {prefix}/files/{token}
    GET  {prefix}/health

Invariants:
    - Errors are JSON bodies {"error": message, "error_code": code}
    - Table responses carry a Delta-Table-Version header
    - NDJSON responses are streamed line by line, never buffered
    - No access control: every share in the catalog is served

How to change safely:
    - Keep route paths and wire field names in line with the Delta Sharing
      protocol; clients depend on them
    - Map new SharingError subclasses in ERROR_STATUS
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from aiohttp import web
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .._version import __version__
from ..catalog import ShareCatalog, SharedTable
from ..config import HttpConfig, QueryConfig, ServerConfig
from ..errors import (
    InvalidRequestError,
    MissingLogError,
    MissingMetadataError,
    NotFoundError,
    SharingError,
    StorageUnavailableError,
)
from ..log.changes import ChangeQuery
from ..log.replay import TimeTravel
from ..protocol.ndjson import (
    NDJSON_CONTENT_TYPE,
    metadata_line,
    protocol_line,
    stream_changes_response,
    stream_query_response,
    wants_ndjson,
)
from ..query.orchestrator import QueryOptions, QueryOrchestrator
from ..query.pagination import paginate, parse_pagination_params
from ..storage.tokens import SignedUrlTokenStore

logger = logging.getLogger(__name__)

TABLE_VERSION_HEADER = "Delta-Table-Version"

ERROR_STATUS: dict[type[SharingError], int] = {
    InvalidRequestError: 400,
    NotFoundError: 404,
    MissingLogError: 404,
    MissingMetadataError: 422,
    StorageUnavailableError: 503,
}


class QueryRequest(BaseModel):
    """Body of a table query."""

    model_config = ConfigDict(populate_by_name=True)

    limit_hint: int | None = Field(None, alias="limitHint", ge=0, description="Row limit")
    offset: int = Field(0, ge=0, description="Rows to skip")
    version: int | None = Field(None, ge=0, description="Time travel to version")
    timestamp: str | None = Field(None, description="Time travel to ISO-8601 instant")


class ChangesRequest(BaseModel):
    """Body of a change data feed query."""

    model_config = ConfigDict(populate_by_name=True)

    starting_version: int | None = Field(None, alias="startingVersion", ge=0)
    ending_version: int | None = Field(None, alias="endingVersion", ge=0)
    starting_timestamp: str | None = Field(None, alias="startingTimestamp")
    ending_timestamp: str | None = Field(None, alias="endingTimestamp")


@dataclass
class SharingService:
    """Everything the HTTP handlers need, owned by the Server."""

    catalog: ShareCatalog
    orchestrator: QueryOrchestrator
    tokens: SignedUrlTokenStore
    config: ServerConfig


def status_for(error: SharingError) -> int:
    """HTTP status for a fatal SharingError."""
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 500


def effective_limit(
    limit_hint: int | None,
    query_config: QueryConfig,
    max_rows_per_query: int | None = None,
) -> int:
    """Apply the default, the server cap and the share cap to a limitHint."""
    limit = min(limit_hint or query_config.default_limit, query_config.max_limit)
    if max_rows_per_query and limit > max_rows_per_query:
        limit = max_rows_per_query
    return limit


def create_http_app(service: SharingService) -> web.Application:
    """Create the Delta Sharing HTTP application.

    Args:
        service: Catalog, orchestrator, token store and configuration

    Returns:
        aiohttp Application instance
    """
    config: HttpConfig = service.config.http
    prefix = config.prefix
    table_path = f"{prefix}/shares/{{share}}/schemas/{{schema}}/tables/{{table}}"

    app = web.Application()

    # Add routes
    app.router.add_get(f"{prefix}/shares", lambda r: handle_list_shares(r, service))
    app.router.add_get(f"{prefix}/shares/{{share}}", lambda r: handle_get_share(r, service))
    app.router.add_get(
        f"{prefix}/shares/{{share}}/schemas", lambda r: handle_list_schemas(r, service)
    )
    app.router.add_get(
        f"{prefix}/shares/{{share}}/schemas/{{schema}}/tables",
        lambda r: handle_list_tables(r, service),
    )
    app.router.add_get(
        f"{prefix}/shares/{{share}}/all-tables", lambda r: handle_list_all_tables(r, service)
    )
    app.router.add_get(f"{table_path}/version", lambda r: handle_table_version(r, service))
    app.router.add_get(f"{table_path}/metadata", lambda r: handle_table_metadata(r, service))
    app.router.add_post(f"{table_path}/query", lambda r: handle_query(r, service))
    app.router.add_post(f"{table_path}/changes", lambda r: handle_changes(r, service))
    app.router.add_get(f"{prefix}/files/{{token}}", lambda r: handle_file_download(r, service))
    app.router.add_get(f"{prefix}/health", lambda r: handle_health(r, service))

    # Add CORS middleware
    @web.middleware
    async def cors_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response = web.Response()
        else:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                response = e

        # Streamed responses have already sent their headers
        if not response.prepared:
            origin = request.headers.get("Origin", "*")
            if "*" in config.cors_origins or origin in config.cors_origins:
                response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Expose-Headers"] = TABLE_VERSION_HEADER

        return response

    app.middlewares.append(cors_middleware)

    # Add error handler
    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except SharingError as e:
            if request.get("streaming"):
                raise
            status = status_for(e)
            if status >= 500:
                logger.error(f"HTTP handler error: {e.message}", extra={"code": e.code})
            return web.json_response({"error": e.message, "error_code": e.code}, status=status)
        except Exception as e:
            if request.get("streaming"):
                raise
            logger.error(f"HTTP handler error: {e}", exc_info=True)
            return web.json_response(
                {"error": str(e), "error_code": "INTERNAL"},
                status=500,
            )

    app.middlewares.insert(0, error_middleware)

    return app


async def read_json_body(request: web.Request) -> dict[str, Any]:
    """Read a JSON object body; an empty body is an empty object.

    Raises:
        InvalidRequestError: If the body is not a JSON object
    """
    if not request.can_read_body:
        return {}
    raw = await request.text()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidRequestError(f"Invalid JSON body: {e}") from e
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return body


def validate_body(model: type[BaseModel], body: dict[str, Any]) -> Any:
    """Validate a request body against a pydantic model.

    Raises:
        InvalidRequestError: On validation failure
    """
    try:
        return model.model_validate(body)
    except ValidationError as e:
        first = e.errors()[0]
        field_name = ".".join(str(p) for p in first.get("loc", ()))
        raise InvalidRequestError(
            f"Invalid {field_name}: {first.get('msg')}", field_name=field_name or None
        ) from e


def paged_response(items: list[dict[str, Any]], request: web.Request) -> web.Response:
    max_results, page_token = parse_pagination_params(request.query)
    page = paginate(items, max_results=max_results, page_token=page_token)
    body: dict[str, Any] = {"items": page.items}
    if page.next_page_token:
        body["nextPageToken"] = page.next_page_token
    return web.json_response(body)


async def lookup_table(request: web.Request, service: SharingService) -> SharedTable:
    info = request.match_info
    return await service.catalog.get_table(info["share"], info["schema"], info["table"])


async def handle_list_shares(request: web.Request, service: SharingService) -> web.Response:
    """Handle GET /shares - List shares."""
    shares = await service.catalog.list_shares()
    return paged_response([s.to_dict() for s in shares], request)


async def handle_get_share(request: web.Request, service: SharingService) -> web.Response:
    """Handle GET /shares/{share} - Get one share."""
    share = await service.catalog.get_share(request.match_info["share"])
    return web.json_response({"share": share.to_dict()})


async def handle_list_schemas(request: web.Request, service: SharingService) -> web.Response:
    """Handle GET /shares/{share}/schemas - List schemas of a share."""
    schemas = await service.catalog.list_schemas(request.match_info["share"])
    return paged_response([s.to_dict() for s in schemas], request)


async def handle_list_tables(request: web.Request, service: SharingService) -> web.Response:
    """Handle GET /shares/{share}/schemas/{schema}/tables - List tables of a schema."""
    tables = await service.catalog.list_tables(
        request.match_info["share"], request.match_info["schema"]
    )
    return paged_response([t.to_dict() for t in tables], request)


async def handle_list_all_tables(request: web.Request, service: SharingService) -> web.Response:
    """Handle GET /shares/{share}/all-tables - List tables across schemas."""
    tables = await service.catalog.list_all_tables(request.match_info["share"])
    return paged_response([t.to_dict() for t in tables], request)


async def handle_table_version(request: web.Request, service: SharingService) -> web.Response:
    """Handle GET .../tables/{table}/version - Resolve the table version."""
    table = await lookup_table(request, service)
    time_travel = TimeTravel.from_request(timestamp=request.query.get("startingTimestamp"))
    version = await service.orchestrator.table_version(table.location, time_travel)
    return web.json_response(
        {"version": version}, headers={TABLE_VERSION_HEADER: str(version)}
    )


async def handle_table_metadata(
    request: web.Request, service: SharingService
) -> web.StreamResponse:
    """Handle GET .../tables/{table}/metadata - Protocol and metadata."""
    table = await lookup_table(request, service)
    snapshot = await service.orchestrator.snapshot(table.location)
    state = snapshot.state
    if state.metadata is None:
        raise MissingMetadataError(table.location)

    protocol = protocol_line(state.protocol)
    metadata = metadata_line(
        state.metadata,
        table_id=table.id,
        table_name=table.public_name,
        version=state.version,
        stats=snapshot.stats,
    )
    headers = {TABLE_VERSION_HEADER: str(state.version)}

    if wants_ndjson(request.headers.get("Accept")):
        lines = json.dumps(protocol) + "\n" + json.dumps(metadata) + "\n"
        return web.Response(text=lines, content_type=NDJSON_CONTENT_TYPE, headers=headers)

    return web.json_response(
        {"protocol": protocol["protocol"], "metadata": metadata["metaData"]},
        headers=headers,
    )


async def handle_query(request: web.Request, service: SharingService) -> web.StreamResponse:
    """Handle POST .../tables/{table}/query - Rows (JSON) or a file manifest (NDJSON)."""
    table = await lookup_table(request, service)
    share = await service.catalog.get_share(table.share)
    body = validate_body(QueryRequest, await read_json_body(request))
    time_travel = TimeTravel.from_request(body.version, body.timestamp)

    if wants_ndjson(request.headers.get("Accept")):
        snapshot = await service.orchestrator.snapshot(table.location, time_travel)
        if snapshot.state.metadata is None:
            raise MissingMetadataError(table.location)

        response = web.StreamResponse(
            headers={
                "Content-Type": NDJSON_CONTENT_TYPE,
                TABLE_VERSION_HEADER: str(snapshot.state.version),
            }
        )
        request["streaming"] = True
        await response.prepare(request)
        async for line in stream_query_response(
            service.orchestrator, snapshot, table_id=table.id, table_name=table.public_name
        ):
            await response.write(line)
        await response.write_eof()
        return response

    limit = effective_limit(body.limit_hint, service.config.query, share.max_rows_per_query)
    result = await service.orchestrator.query(
        table.location,
        QueryOptions(limit=limit, offset=body.offset, time_travel=time_travel),
    )
    return web.json_response(
        {
            "rows": result.rows,
            "rowCount": len(result.rows),
            "hasMore": result.has_more,
            "accessInfo": {"maxRowsPerQuery": share.max_rows_per_query},
        },
        headers={TABLE_VERSION_HEADER: str(result.version)},
    )


async def handle_changes(request: web.Request, service: SharingService) -> web.StreamResponse:
    """Handle POST .../tables/{table}/changes - Change data feed as NDJSON."""
    table = await lookup_table(request, service)
    body = validate_body(ChangesRequest, await read_json_body(request))
    query = ChangeQuery.from_request(
        starting_version=body.starting_version,
        ending_version=body.ending_version,
        starting_timestamp=body.starting_timestamp,
        ending_timestamp=body.ending_timestamp,
    )
    feed = await service.orchestrator.changes(table.location, query)

    response = web.StreamResponse(
        headers={
            "Content-Type": NDJSON_CONTENT_TYPE,
            TABLE_VERSION_HEADER: str(feed.changes.end_version),
        }
    )
    request["streaming"] = True
    await response.prepare(request)
    async for line in stream_changes_response(
        service.orchestrator, feed, table_id=table.id, table_name=table.public_name
    ):
        await response.write(line)
    await response.write_eof()
    return response


async def handle_file_download(
    request: web.Request, service: SharingService
) -> web.StreamResponse:
    """Handle GET /files/{token} - Download a local file via a signed token."""
    path = service.tokens.resolve(request.match_info["token"])
    if path is None:
        return web.json_response(
            {"error": "Invalid or expired file token", "error_code": "FORBIDDEN"},
            status=403,
        )

    file_path = Path(path)
    if not file_path.is_file():
        raise NotFoundError(f"File no longer exists: {file_path.name}")

    return web.FileResponse(
        file_path,
        headers={
            "Content-Type": "application/octet-stream",
            "Content-Disposition": f'attachment; filename="{file_path.name}"',
        },
    )


async def handle_health(request: web.Request, service: SharingService) -> web.Response:
    """Handle GET /health - Health check."""
    shares = await service.catalog.list_shares()
    return web.json_response(
        {"status": "healthy", "version": __version__, "shares": len(shares)}
    )


async def run_http_server(
    service: SharingService,
    host: str = "0.0.0.0",
    port: int = 5000,
) -> None:
    """Run the HTTP server until cancelled.

    Args:
        service: Handler dependencies
        host: Host to bind to
        port: Port to listen on
    """
    app = create_http_app(service)

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"HTTP server running on http://{host}:{port}{service.config.http.prefix}")

    # Keep running until cancelled
    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await runner.cleanup()
