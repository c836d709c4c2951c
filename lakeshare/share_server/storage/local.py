"""
Local filesystem storage backend.

Blocking filesystem calls run on the default executor so the event loop
stays responsive while large data files are read.

Signed URLs point back at this server's download route and are backed by
a SignedUrlTokenStore.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, TypeVar

from ..errors import SignedUrlError
from .base import decode_json
from .tokens import SignedUrlTokenStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalStorageBackend:
    """StorageBackend over the local filesystem.

    Attributes:
        root: Directory relative paths are resolved against
        public_endpoint: Base URL used in download links
        download_prefix: Route prefix of the download endpoint

    Example:
        >>> backend = LocalStorageBackend(SignedUrlTokenStore("secret"), root="/data")
        >>> await backend.list_files("orders/_delta_log")
        ['00000000000000000000.json', '00000000000000000001.json']
    """

    def __init__(
        self,
        tokens: SignedUrlTokenStore,
        root: str = ".",
        public_endpoint: str = "http://localhost:5000",
        download_prefix: str = "/delta-sharing",
    ) -> None:
        self.tokens = tokens
        self.root = Path(root)
        self.public_endpoint = public_endpoint.rstrip("/")
        self.download_prefix = download_prefix.rstrip("/")

    @property
    def name(self) -> str:
        return "local"

    def resolve_path(self, path: str) -> Path:
        """Resolve a path against the backend root (absolute paths pass through)."""
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return (self.root / candidate).resolve()

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        return await asyncio.get_running_loop().run_in_executor(None, func, *args)

    async def list_files(self, dir_path: str) -> list[str]:
        directory = self.resolve_path(dir_path)

        def _list() -> list[str]:
            try:
                return [entry.name for entry in directory.iterdir() if entry.is_file()]
            except FileNotFoundError:
                return []

        return await self._run(_list)

    async def exists(self, path: str) -> bool:
        return await self._run(self.resolve_path(path).exists)

    async def read_file(self, path: str) -> bytes:
        return await self._run(self.resolve_path(path).read_bytes)

    async def read_text(self, path: str) -> str:
        data = await self.read_file(path)
        return data.decode("utf-8")

    async def read_json(self, path: str) -> Any:
        return decode_json(await self.read_text(path), path)

    async def file_size(self, path: str) -> int:
        stat = await self._run(self.resolve_path(path).stat)
        return stat.st_size

    async def generate_presigned_url(self, path: str, expires_in_seconds: int = 3600) -> str:
        resolved = self.resolve_path(path)
        if not await self._run(resolved.is_file):
            raise SignedUrlError(path, "file does not exist")

        token = self.tokens.issue(str(resolved), expires_in_seconds)
        return f"{self.public_endpoint}{self.download_prefix}/files/{token}"

    async def close(self) -> None:
        """Nothing to release for the local filesystem."""
