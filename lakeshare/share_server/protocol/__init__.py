"""
Delta Sharing wire protocol helpers.
"""

from .ndjson import (
    NDJSON_CONTENT_TYPE,
    change_line,
    encode_line,
    file_line,
    metadata_line,
    protocol_line,
    stream_changes_response,
    stream_query_response,
    wants_ndjson,
)

__all__ = [
    "NDJSON_CONTENT_TYPE",
    "wants_ndjson",
    "encode_line",
    "protocol_line",
    "metadata_line",
    "file_line",
    "change_line",
    "stream_query_response",
    "stream_changes_response",
]
