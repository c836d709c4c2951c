"""
Google Cloud Storage backend.

google-cloud-storage is a blocking client, so every call runs on the
default executor.

Invariants:
    - One client per bucket, created lazily on first use
    - Signed URLs are V4 GET URLs; signing needs service account credentials
      (GOOGLE_APPLICATION_CREDENTIALS) or an emulator
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import timedelta
from typing import Any, Callable, TypeVar

from google.api_core.exceptions import Forbidden, GoogleAPIError, NotFound
from google.auth.credentials import AnonymousCredentials
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from ..config import GcsConfig
from ..errors import SignedUrlError, StorageUnavailableError
from .base import decode_json

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GcsStorageBackend:
    """StorageBackend over a single GCS bucket."""

    def __init__(self, bucket: str, config: GcsConfig | None = None) -> None:
        self.bucket_name = bucket
        self.config = config or GcsConfig()
        self._client: storage.Client | None = None
        self._bucket: storage.Bucket | None = None

    @property
    def name(self) -> str:
        return f"gcs:{self.bucket_name}"

    def _get_bucket(self) -> storage.Bucket:
        if self._bucket is None:
            if os.environ.get("STORAGE_EMULATOR_HOST"):
                self._client = storage.Client(
                    project=self.config.project_id, credentials=AnonymousCredentials()
                )
            elif self.config.credentials_file:
                self._client = storage.Client.from_service_account_json(
                    self.config.credentials_file, project=self.config.project_id
                )
            else:
                self._client = storage.Client(project=self.config.project_id)
            self._bucket = self._client.bucket(self.bucket_name)
            logger.info("GCS client created", extra={"bucket": self.bucket_name})
        return self._bucket

    async def _run(
        self, func: Callable[..., T], *args: Any, key: str = "", per_object: bool = True
    ) -> T:
        try:
            return await asyncio.get_running_loop().run_in_executor(None, func, *args)
        except NotFound as e:
            raise FileNotFoundError(f"gs://{self.bucket_name}/{key}") from e
        except Forbidden as e:
            if per_object:
                raise PermissionError(f"Access denied: gs://{self.bucket_name}/{key}") from e
            raise StorageUnavailableError(f"GCS error for {key}: {e}", backend=self.name) from e
        except (GoogleAPIError, GoogleAuthError) as e:
            raise StorageUnavailableError(
                f"GCS error for {key}: {e}", backend=self.name
            ) from e

    async def list_files(self, dir_path: str) -> list[str]:
        prefix = dir_path.strip("/")
        prefix = f"{prefix}/" if prefix else ""

        def _list() -> list[str]:
            blobs = self._get_bucket().list_blobs(prefix=prefix, delimiter="/")
            return [b.name[len(prefix) :] for b in blobs if b.name != prefix]

        return await self._run(_list, key=prefix, per_object=False)

    async def exists(self, path: str) -> bool:
        key = path.strip("/")

        def _exists() -> bool:
            bucket = self._get_bucket()
            if bucket.blob(key).exists():
                return True
            return any(True for _ in bucket.list_blobs(prefix=f"{key}/", max_results=1))

        return await self._run(_exists, key=key)

    async def read_file(self, path: str) -> bytes:
        key = path.strip("/")
        return await self._run(
            lambda: self._get_bucket().blob(key).download_as_bytes(), key=key
        )

    async def read_text(self, path: str) -> str:
        return (await self.read_file(path)).decode("utf-8")

    async def read_json(self, path: str) -> Any:
        return decode_json(await self.read_text(path), path)

    async def file_size(self, path: str) -> int:
        key = path.strip("/")

        def _size() -> int:
            blob = self._get_bucket().get_blob(key)
            if blob is None:
                raise FileNotFoundError(f"gs://{self.bucket_name}/{key}")
            return int(blob.size or 0)

        return await self._run(_size, key=key)

    async def generate_presigned_url(self, path: str, expires_in_seconds: int = 3600) -> str:
        key = path.strip("/")

        def _sign() -> str:
            return self._get_bucket().blob(key).generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=expires_in_seconds),
                method="GET",
            )

        try:
            return await asyncio.get_running_loop().run_in_executor(None, _sign)
        except (GoogleAPIError, GoogleAuthError, AttributeError, ValueError) as e:
            # AttributeError: credentials without a private key cannot sign
            raise SignedUrlError(path, str(e)) from e

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._bucket = None
