"""
In-memory storage backend implementation for testing.

This module provides a simple in-memory StorageBackend for:
- Unit tests
- Integration tests
- Local development without a filesystem or cloud account

Invariants:
    - All data is lost on process exit
    - Directory semantics match the object-store backends: a "directory"
      exists while at least one key lives under its prefix

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with StorageBackend protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from ..errors import SignedUrlError, StorageUnavailableError
from .base import decode_json

logger = logging.getLogger(__name__)


class InMemoryStorageBackend:
    """In-memory implementation of StorageBackend for testing.

    Attributes:
        bucket: Name reported in URLs and logs

    Testing hooks:
        fail_signing: Paths whose pre-signed URL generation fails
        fail_reads: Paths whose reads raise StorageUnavailableError
        deny_reads: Paths whose reads raise PermissionError
        read_count: Number of read_file() calls made so far

    Example:
        >>> backend = InMemoryStorageBackend()
        >>> backend.put_text("t/_delta_log/00000000000000000000.json", "...")
        >>> await backend.list_files("t/_delta_log")
        ['00000000000000000000.json']
    """

    def __init__(self, bucket: str = "memory") -> None:
        self.bucket = bucket
        self._objects: dict[str, bytes] = {}
        self.fail_signing: set[str] = set()
        self.fail_reads: set[str] = set()
        self.deny_reads: set[str] = set()
        self.read_count = 0
        self._closed = False

    @property
    def name(self) -> str:
        return f"memory:{self.bucket}"

    @property
    def is_closed(self) -> bool:
        return self._closed

    @staticmethod
    def _normalize(path: str) -> str:
        return path.strip("/")

    # --- Testing helpers -------------------------------------------------

    def put_bytes(self, path: str, data: bytes) -> None:
        """Store raw bytes at path."""
        self._objects[self._normalize(path)] = data

    def put_text(self, path: str, text: str) -> None:
        """Store UTF-8 text at path."""
        self.put_bytes(path, text.encode("utf-8"))

    def put_json(self, path: str, value: Any) -> None:
        """Store a JSON document at path."""
        self.put_text(path, json.dumps(value))

    def delete(self, path: str) -> None:
        """Remove an object if present."""
        self._objects.pop(self._normalize(path), None)

    def keys(self) -> list[str]:
        """All stored keys, sorted."""
        return sorted(self._objects)

    # --- StorageBackend --------------------------------------------------

    async def list_files(self, dir_path: str) -> list[str]:
        prefix = self._normalize(dir_path)
        prefix = f"{prefix}/" if prefix else ""
        names = []
        for key in self._objects:
            if key.startswith(prefix):
                rest = key[len(prefix) :]
                if rest and "/" not in rest:
                    names.append(rest)
        return names

    async def exists(self, path: str) -> bool:
        key = self._normalize(path)
        if key in self._objects:
            return True
        return any(k.startswith(f"{key}/") for k in self._objects)

    async def read_file(self, path: str) -> bytes:
        key = self._normalize(path)
        self.read_count += 1
        if key in self.fail_reads:
            raise StorageUnavailableError(f"Simulated outage reading {key}", backend=self.name)
        if key in self.deny_reads:
            raise PermissionError(f"Simulated access denied: memory://{self.bucket}/{key}")
        try:
            return self._objects[key]
        except KeyError:
            raise FileNotFoundError(f"memory://{self.bucket}/{key}") from None

    async def read_text(self, path: str) -> str:
        return (await self.read_file(path)).decode("utf-8")

    async def read_json(self, path: str) -> Any:
        return decode_json(await self.read_text(path), path)

    async def file_size(self, path: str) -> int:
        return len(await self.read_file(path))

    async def generate_presigned_url(self, path: str, expires_in_seconds: int = 3600) -> str:
        key = self._normalize(path)
        if key in self.fail_signing:
            raise SignedUrlError(path, "simulated signing failure")
        if key not in self._objects:
            raise SignedUrlError(path, "object does not exist")
        expires = int(time.time()) + expires_in_seconds
        return f"memory://{self.bucket}/{key}?expires={expires}"

    async def close(self) -> None:
        self._closed = True
        logger.debug("InMemoryStorageBackend closed", extra={"bucket": self.bucket})

    def get_object(self, path: str) -> bytes | None:
        """Direct synchronous access for assertions."""
        return self._objects.get(self._normalize(path))
