"""
API layer for LakeShare.

Serves the Delta Sharing REST protocol over aiohttp.
"""

from .http_server import (
    ChangesRequest,
    QueryRequest,
    SharingService,
    create_http_app,
    effective_limit,
    run_http_server,
)

__all__ = [
    "SharingService",
    "QueryRequest",
    "ChangesRequest",
    "create_http_app",
    "effective_limit",
    "run_http_server",
]
