"""
Backend registry: maps table locations to storage backend instances.

The registry is an explicit keyed cache owned by the server. One backend
instance is created per (kind, bucket|container|"local") and reused by
every request touching that bucket.

Invariants:
    - resolve() never performs I/O; clients connect lazily on first call
    - close() releases every backend and empties the cache
    - In-memory backends must be registered explicitly before use

How to change safely:
    - New backends need a BackendKind, a parse_location() branch and a
      branch in create_backend()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import StorageUnavailableError
from .base import BackendKind, ParsedLocation, StorageBackend, parse_location
from .local import LocalStorageBackend
from .memory import InMemoryStorageBackend
from .tokens import SignedUrlTokenStore

if TYPE_CHECKING:
    from ..config import ServerConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedLocation:
    """A table location bound to the backend that serves it.

    Attributes:
        backend: Storage backend instance
        base_path: Table root path within the backend
        location: Original location string
    """

    backend: StorageBackend
    base_path: str
    location: str


def create_backend(
    parsed: ParsedLocation,
    config: ServerConfig,
    tokens: SignedUrlTokenStore,
) -> StorageBackend:
    """Factory function to create a storage backend for a parsed location.

    Args:
        parsed: Parsed table location
        config: Server configuration
        tokens: Token store used by the local backend's download links

    Returns:
        Appropriate StorageBackend implementation

    Raises:
        ValueError: If the backend kind cannot be created from configuration
    """
    if parsed.kind == BackendKind.LOCAL:
        return LocalStorageBackend(
            tokens,
            root=config.local.root,
            public_endpoint=config.local.public_endpoint,
            download_prefix=config.http.prefix,
        )
    elif parsed.kind == BackendKind.S3:
        from .s3 import S3StorageBackend

        return S3StorageBackend(parsed.bucket or "", config.s3)
    elif parsed.kind == BackendKind.GCS:
        from .gcs import GcsStorageBackend

        return GcsStorageBackend(parsed.bucket or "", config.gcs)
    elif parsed.kind == BackendKind.AZURE:
        from .azure import AzureStorageBackend

        return AzureStorageBackend(parsed.container or "", parsed.account, config.azure)
    else:
        raise ValueError(f"Unsupported storage backend: {parsed.kind}")


class BackendRegistry:
    """Keyed cache of storage backends.

    Example:
        >>> registry = BackendRegistry(config, tokens)
        >>> resolved = registry.resolve("s3://lake/sales/orders")
        >>> resolved.base_path
        'sales/orders'
    """

    def __init__(self, config: ServerConfig, tokens: SignedUrlTokenStore) -> None:
        self.config = config
        self.tokens = tokens
        self._backends: dict[str, StorageBackend] = {}

    def register(self, backend: InMemoryStorageBackend) -> None:
        """Register an in-memory backend, addressable as memory://{bucket}/..."""
        self._backends[f"{BackendKind.MEMORY.value}:{backend.bucket}"] = backend

    def backend_for(self, parsed: ParsedLocation) -> StorageBackend:
        """Return the cached backend for a parsed location, creating it if needed."""
        key = parsed.cache_key
        backend = self._backends.get(key)
        if backend is not None:
            return backend

        if parsed.kind == BackendKind.MEMORY:
            raise StorageUnavailableError(
                f"No in-memory backend registered for '{parsed.bucket}'",
                backend=key,
            )

        backend = create_backend(parsed, self.config, self.tokens)
        self._backends[key] = backend
        logger.debug("Created storage backend", extra={"backend": backend.name})
        return backend

    def resolve(self, location: str) -> ResolvedLocation:
        """Bind a table location to its backend."""
        parsed = parse_location(location)
        return ResolvedLocation(
            backend=self.backend_for(parsed),
            base_path=parsed.path,
            location=location,
        )

    async def close(self) -> None:
        """Close every backend and clear the cache."""
        for key, backend in list(self._backends.items()):
            try:
                await backend.close()
            except Exception as e:
                logger.warning(f"Error closing storage backend {key}: {e}")
        self._backends.clear()

    def __len__(self) -> int:
        return len(self._backends)
