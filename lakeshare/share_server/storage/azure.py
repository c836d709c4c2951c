"""
Azure Blob Storage backend (ADLS Gen2 via the blob endpoint).

Uses the azure-storage-blob asyncio client. SAS signing needs the account
key, taken from the connection string or AZURE_STORAGE_ACCOUNT_KEY.

Invariants:
    - One client per container, created lazily on first use
    - SAS tokens grant read-only access to a single blob
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.storage.blob import BlobSasPermissions, generate_blob_sas
from azure.storage.blob.aio import BlobServiceClient, ContainerClient

from ..config import AzureConfig
from ..errors import SignedUrlError, StorageUnavailableError
from .base import decode_json

logger = logging.getLogger(__name__)


class AzureStorageBackend:
    """StorageBackend over a single Azure Blob container."""

    def __init__(
        self,
        container: str,
        account: str | None = None,
        config: AzureConfig | None = None,
    ) -> None:
        self.container = container
        self.account = account
        self.config = config or AzureConfig()
        self._service: BlobServiceClient | None = None
        self._container_client: ContainerClient | None = None

    @property
    def name(self) -> str:
        return f"azure:{self.container}"

    def _get_container(self) -> ContainerClient:
        if self._container_client is None:
            if self.config.connection_string:
                self._service = BlobServiceClient.from_connection_string(
                    self.config.connection_string
                )
            elif self.account:
                self._service = BlobServiceClient(
                    account_url=f"https://{self.account}.blob.core.windows.net",
                    credential=self.config.account_key,
                )
            else:
                raise StorageUnavailableError(
                    "Azure location has no account and AZURE_STORAGE_CONNECTION_STRING is not set",
                    backend=self.name,
                )
            if self.account is None:
                self.account = self._service.account_name
            self._container_client = self._service.get_container_client(self.container)
            logger.info(
                "Azure client created",
                extra={"container": self.container, "account": self.account},
            )
        return self._container_client

    def _translate_error(self, e: AzureError, key: str, per_object: bool = True) -> Exception:
        if isinstance(e, ResourceNotFoundError):
            return FileNotFoundError(f"azure://{self.container}/{key}")
        if per_object and isinstance(e, HttpResponseError) and e.status_code == 403:
            return PermissionError(f"Access denied: azure://{self.container}/{key}")
        return StorageUnavailableError(f"Azure error for {key}: {e}", backend=self.name)

    def _account_key(self) -> str | None:
        if self.config.account_key:
            return self.config.account_key
        if self._service is not None:
            credential = self._service.credential
            return getattr(credential, "account_key", None)
        return None

    async def list_files(self, dir_path: str) -> list[str]:
        container = self._get_container()
        prefix = dir_path.strip("/")
        prefix = f"{prefix}/" if prefix else ""

        names = []
        try:
            async for item in container.walk_blobs(name_starts_with=prefix, delimiter="/"):
                # BlobPrefix entries (sub-directories) end with the delimiter
                if item.name.endswith("/"):
                    continue
                names.append(item.name[len(prefix) :])
        except AzureError as e:
            raise self._translate_error(e, prefix, per_object=False) from e
        return names

    async def exists(self, path: str) -> bool:
        container = self._get_container()
        key = path.strip("/")
        try:
            if await container.get_blob_client(key).exists():
                return True
        except AzureError as e:
            raise self._translate_error(e, key) from e
        return bool(await self.list_files(key))

    async def read_file(self, path: str) -> bytes:
        container = self._get_container()
        key = path.strip("/")
        try:
            downloader = await container.download_blob(key)
            return await downloader.readall()
        except AzureError as e:
            raise self._translate_error(e, key) from e

    async def read_text(self, path: str) -> str:
        return (await self.read_file(path)).decode("utf-8")

    async def read_json(self, path: str) -> Any:
        return decode_json(await self.read_text(path), path)

    async def file_size(self, path: str) -> int:
        container = self._get_container()
        key = path.strip("/")
        try:
            properties = await container.get_blob_client(key).get_blob_properties()
        except AzureError as e:
            raise self._translate_error(e, key) from e
        return int(properties.size)

    async def generate_presigned_url(self, path: str, expires_in_seconds: int = 3600) -> str:
        container = self._get_container()
        key = path.strip("/")
        account_key = self._account_key()
        if not account_key or not self.account:
            raise SignedUrlError(path, "Azure account key is required for SAS signing")

        try:
            sas = generate_blob_sas(
                account_name=self.account,
                container_name=self.container,
                blob_name=key,
                account_key=account_key,
                permission=BlobSasPermissions(read=True),
                expiry=datetime.now(timezone.utc) + timedelta(seconds=expires_in_seconds),
            )
        except (AzureError, ValueError) as e:
            raise SignedUrlError(path, str(e)) from e
        return f"{container.get_blob_client(key).url}?{sas}"

    async def close(self) -> None:
        if self._service is not None:
            await self._service.close()
        self._service = None
        self._container_client = None
