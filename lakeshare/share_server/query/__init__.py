"""
Query layer for LakeShare.

Turns resolved table state into something a client can consume: a page of
decoded rows, or a streamable manifest of signed file URLs.
"""

from .orchestrator import (
    ChangeFeed,
    QueryOptions,
    QueryOrchestrator,
    QueryResult,
    SignedFile,
    Snapshot,
    ValidationResult,
)
from .pagination import (
    Page,
    decode_page_token,
    encode_page_token,
    paginate,
    parse_pagination_params,
    slice_rows,
)
from .readers import FileContentReader, normalize_value

__all__ = [
    # Orchestration
    "QueryOrchestrator",
    "QueryOptions",
    "QueryResult",
    "Snapshot",
    "ChangeFeed",
    "SignedFile",
    "ValidationResult",
    # Readers
    "FileContentReader",
    "normalize_value",
    # Pagination
    "Page",
    "paginate",
    "slice_rows",
    "encode_page_token",
    "decode_page_token",
    "parse_pagination_params",
]
