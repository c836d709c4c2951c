"""
Delta Sharing NDJSON response builder.

A protocol response is a strictly ordered stream of JSON lines:

    {"protocol": {"minReaderVersion": 1}}
    {"metaData": {"id": ..., "format": ..., "schemaString": ..., ...}}
    {"file": {...}}                        (snapshot query, one per file)
    {"add"|"remove"|"cdf": {...}}          (change query, one per record)

Invariants:
    - protocol first, metaData second, then file/change lines
    - Lines are yielded as produced; a response is never buffered whole
    - Optional fields with no value are omitted

How to change safely:
    - Field names are part of the wire protocol; never rename them
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, AsyncIterator

from ..log.actions import ProtocolVersion, TableMetadata
from ..log.changes import ChangeType

if TYPE_CHECKING:
    from ..log.replay import TableStats
    from ..query.orchestrator import ChangeFeed, QueryOrchestrator, SignedFile, Snapshot

NDJSON_CONTENT_TYPE = "application/x-ndjson"
EMPTY_SCHEMA = '{"type":"struct","fields":[]}'

_NDJSON_ACCEPT_TYPES = (
    "application/x-ndjson",
    "application/x-ndjson+json",
    "application/json-seq",
)


def wants_ndjson(accept: str | None) -> bool:
    """Whether an Accept header asks for a streamed NDJSON response."""
    if not accept:
        return False
    return any(content_type in accept for content_type in _NDJSON_ACCEPT_TYPES)


def encode_line(action: dict[str, Any]) -> bytes:
    """Serialize one action as a newline-terminated JSON line."""
    return (json.dumps(action, separators=(",", ":")) + "\n").encode("utf-8")


def protocol_line(protocol: ProtocolVersion | None = None) -> dict[str, Any]:
    return {"protocol": (protocol or ProtocolVersion()).to_dict()}


def metadata_line(
    metadata: TableMetadata | None,
    table_id: str | None = None,
    table_name: str | None = None,
    version: int | None = None,
    stats: TableStats | None = None,
) -> dict[str, Any]:
    """Build the metaData line.

    Catalog identity (table_id/table_name) wins over the log's own id/name.
    Snapshot responses also carry version, size and numFiles.
    """
    body: dict[str, Any] = {
        "id": table_id or (metadata.id if metadata else None),
        "name": table_name or (metadata.name if metadata else None),
        "format": {
            "provider": metadata.format_provider if metadata else "parquet",
            "options": metadata.format_options if metadata else {},
        },
        "schemaString": (metadata.schema_string if metadata else "") or EMPTY_SCHEMA,
        "partitionColumns": metadata.partition_columns if metadata else [],
        "configuration": metadata.configuration if metadata else {},
    }
    if version is not None:
        body["version"] = version
    if stats is not None:
        body["size"] = stats.total_size
        body["numFiles"] = stats.num_files
    return {"metaData": {k: v for k, v in body.items() if v is not None}}


def file_line(signed: SignedFile) -> dict[str, Any]:
    return {"file": signed.to_dict()}


def change_line(signed: SignedFile) -> dict[str, Any]:
    """Build an add/remove/cdf line keyed by the record's change type."""
    key = (signed.change_type or ChangeType.ADD).value
    return {key: signed.to_dict()}


async def stream_query_response(
    orchestrator: QueryOrchestrator,
    snapshot: Snapshot,
    table_id: str | None = None,
    table_name: str | None = None,
) -> AsyncIterator[bytes]:
    """Stream a snapshot query: protocol, metaData, then one file line per file."""
    state = snapshot.state
    yield encode_line(protocol_line(state.protocol))
    yield encode_line(
        metadata_line(
            state.metadata,
            table_id=table_id,
            table_name=table_name,
            version=state.version,
            stats=snapshot.stats,
        )
    )
    async for signed in orchestrator.file_manifest(snapshot):
        yield encode_line(file_line(signed))


async def stream_changes_response(
    orchestrator: QueryOrchestrator,
    feed: ChangeFeed,
    table_id: str | None = None,
    table_name: str | None = None,
) -> AsyncIterator[bytes]:
    """Stream a change query: protocol, metaData, then one line per change."""
    yield encode_line(protocol_line())
    yield encode_line(
        metadata_line(feed.changes.metadata, table_id=table_id, table_name=table_name)
    )
    async for signed in orchestrator.change_manifest(feed):
        yield encode_line(change_line(signed))
