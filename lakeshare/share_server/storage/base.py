"""
Base protocol and types for the storage backend abstraction.

This module defines the StorageBackend protocol that all backends must
implement, along with location parsing shared by the backend registry.

Invariants:
    - Paths handed to a backend are relative to its bucket/container
      (or absolute/relative filesystem paths for the local backend)
    - list_files() returns immediate children names only, never prefixes
    - A missing object raises FileNotFoundError; an unreachable backend
      raises StorageUnavailableError
    - generate_presigned_url() raises SignedUrlError on failure

How to change safely:
    - Protocol changes require updating all implementations
    - Add new location schemes to parse_location() with a test
"""

from __future__ import annotations

import json
import posixpath
import re
from abc import abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class BackendKind(Enum):
    """Supported storage backends."""

    LOCAL = "local"
    S3 = "s3"
    GCS = "gcs"
    AZURE = "azure"
    MEMORY = "memory"


@dataclass(frozen=True)
class ParsedLocation:
    """A table location split into backend identity and in-backend path.

    Attributes:
        kind: Which backend serves the location
        path: Path within the backend (key prefix for object stores)
        bucket: S3/GCS bucket name
        container: Azure container name
        account: Azure storage account name

    Example:
        >>> parse_location("s3://lake/sales/orders")
        ParsedLocation(kind=<BackendKind.S3: 's3'>, path='sales/orders', bucket='lake', ...)
    """

    kind: BackendKind
    path: str
    bucket: str | None = None
    container: str | None = None
    account: str | None = None

    @property
    def cache_key(self) -> str:
        """Key identifying the backend instance able to serve this location."""
        return f"{self.kind.value}:{self.bucket or self.container or 'local'}"


_AZURE_SCHEME = re.compile(r"^(abfss?|wasbs?)://")
_AZURE_FULL = re.compile(r"^([^@]+)@([^.]+)\..*?/(.*)$")
_AZURE_BARE = re.compile(r"^([^@]+)@([^./]+)(?:\.[^/]*)?/?$")


def parse_location(location: str) -> ParsedLocation:
    """Parse a table location into its backend and path.

    Supported forms:
        file:///abs/path, /abs/path, ./rel, ../rel, rel  -> local
        s3://bucket/prefix, s3a://bucket/prefix          -> S3
        gs://bucket/prefix                               -> GCS
        abfss://container@account.dfs.core.windows.net/p -> Azure
        wasbs://container/p                              -> Azure (no account)
        memory://name/prefix                             -> in-memory

    Args:
        location: Table location string

    Returns:
        ParsedLocation
    """
    if location.startswith("file://"):
        return ParsedLocation(kind=BackendKind.LOCAL, path=location[len("file://") :])

    if location.startswith("s3://") or location.startswith("s3a://"):
        bucket, _, path = location.split("://", 1)[1].partition("/")
        return ParsedLocation(kind=BackendKind.S3, path=path, bucket=bucket)

    if location.startswith("gs://"):
        bucket, _, path = location[len("gs://") :].partition("/")
        return ParsedLocation(kind=BackendKind.GCS, path=path, bucket=bucket)

    if _AZURE_SCHEME.match(location):
        rest = _AZURE_SCHEME.sub("", location)
        match = _AZURE_FULL.match(rest)
        if match:
            return ParsedLocation(
                kind=BackendKind.AZURE,
                container=match.group(1),
                account=match.group(2),
                path=match.group(3),
            )
        match = _AZURE_BARE.match(rest)
        if match:
            return ParsedLocation(
                kind=BackendKind.AZURE,
                container=match.group(1),
                account=match.group(2),
                path="",
            )
        container, _, path = rest.partition("/")
        return ParsedLocation(kind=BackendKind.AZURE, container=container, path=path)

    if location.startswith("memory://"):
        bucket, _, path = location[len("memory://") :].partition("/")
        return ParsedLocation(kind=BackendKind.MEMORY, path=path, bucket=bucket)

    return ParsedLocation(kind=BackendKind.LOCAL, path=location)


def join_path(base: str, *parts: str) -> str:
    """Join backend paths with '/' regardless of host OS."""
    if not base:
        return posixpath.join(*parts) if parts else ""
    return posixpath.join(base, *parts)


def join_table_path(base: str, relative: str) -> str:
    """Join a data file path from the log onto the table root.

    Raises:
        ValueError: If the path is absolute, a URI, or climbs out of the root
    """
    normalized = posixpath.normpath(relative) if relative else ""
    if (
        not normalized
        or "://" in relative
        or posixpath.isabs(relative)
        or normalized == ".."
        or normalized.startswith("../")
    ):
        raise ValueError(f"Data file path escapes the table root: {relative!r}")
    return join_path(base, normalized)


def decode_json(raw: str | bytes, path: str) -> Any:
    """Parse a JSON document read from a backend.

    Raises:
        ValueError: If the content is not valid JSON
    """
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to parse JSON from {path}: {e}") from e


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol for storage backends.

    The engine is backend-agnostic: any implementation satisfying this
    contract (local filesystem or an object-store client) is interchangeable.

    Example:
        >>> backend = LocalStorageBackend(tokens)
        >>> names = await backend.list_files("/data/orders/_delta_log")
        >>> text = await backend.read_text("/data/orders/_delta_log/" + names[0])
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend identity (for logs and errors)."""
        ...

    @abstractmethod
    async def list_files(self, dir_path: str) -> list[str]:
        """List file names directly under a directory/prefix.

        Returns an empty list when the directory does not exist.

        Raises:
            StorageUnavailableError: If the backend is unreachable
        """
        ...

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Whether a file (or non-empty directory) exists at path."""
        ...

    @abstractmethod
    async def read_file(self, path: str) -> bytes:
        """Read a whole file.

        Raises:
            FileNotFoundError: If the object does not exist
            StorageUnavailableError: If the backend is unreachable
        """
        ...

    @abstractmethod
    async def read_text(self, path: str) -> str:
        """Read a whole file as UTF-8 text."""
        ...

    @abstractmethod
    async def read_json(self, path: str) -> Any:
        """Read and parse a JSON document.

        Raises:
            ValueError: If the content is not valid JSON
        """
        ...

    @abstractmethod
    async def file_size(self, path: str) -> int:
        """Size of a file in bytes."""
        ...

    @abstractmethod
    async def generate_presigned_url(self, path: str, expires_in_seconds: int = 3600) -> str:
        """Mint a time-limited, credential-free download URL.

        Raises:
            SignedUrlError: If the URL cannot be generated
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release clients and connection pools."""
        ...
