"""
Storage backend abstraction for LakeShare.

This module provides a pluggable storage interface supporting:
- Local filesystem
- Amazon S3 and S3-compatible stores
- Google Cloud Storage
- Azure Blob Storage / ADLS Gen2
- In-memory (for testing)

Delta tables are plain files (a _delta_log/ directory of JSON commits plus
data files), so every backend only needs to list, read and sign blobs.

Invariants:
    - Backends are read-only; nothing in LakeShare writes to a table
    - Backend instances are cached by BackendRegistry, never globally

How to change safely:
    - New backends must implement StorageBackend protocol
    - Cloud backends are imported lazily by create_backend()
"""

from .base import (
    BackendKind,
    ParsedLocation,
    StorageBackend,
    join_path,
    join_table_path,
    parse_location,
)
from .local import LocalStorageBackend
from .memory import InMemoryStorageBackend
from .registry import BackendRegistry, ResolvedLocation, create_backend
from .tokens import SignedUrlTokenStore, TokenGrant

__all__ = [
    # Protocol and types
    "StorageBackend",
    "BackendKind",
    "ParsedLocation",
    "ResolvedLocation",
    "TokenGrant",
    # Helpers
    "parse_location",
    "join_path",
    "join_table_path",
    "create_backend",
    # Caches
    "BackendRegistry",
    "SignedUrlTokenStore",
    # Implementations
    "LocalStorageBackend",
    "InMemoryStorageBackend",
]
