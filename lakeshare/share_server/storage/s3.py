"""
Amazon S3 storage backend.

This backend serves Delta tables stored in S3 or any S3-compatible store
(MinIO, LocalStack). It uses aiobotocore for async operations.

Invariants:
    - One client per bucket, created lazily on first use
    - Listing uses Delimiter="/" so only immediate children are returned
    - Pre-signed URLs are generated locally by botocore (no network call)

How to change safely:
    - Map new botocore error codes in _translate_error()
    - Test against LocalStack/MinIO before enabling in production
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from aiobotocore.session import get_session
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from ..config import S3Config
from ..errors import SignedUrlError, StorageUnavailableError
from .base import decode_json

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_DENIED_CODES = {"AccessDenied", "403", "Forbidden"}


class S3StorageBackend:
    """StorageBackend over a single S3 bucket.

    Attributes:
        bucket: Bucket served by this backend
        config: S3 connection settings

    Example:
        >>> backend = S3StorageBackend("lake", S3Config(region="eu-west-1"))
        >>> await backend.list_files("sales/orders/_delta_log")
    """

    def __init__(self, bucket: str, config: S3Config | None = None) -> None:
        self.bucket = bucket
        self.config = config or S3Config()
        self._session = None
        self._client_ctx = None
        self._client: Any = None
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return f"s3:{self.bucket}"

    async def _get_client(self) -> Any:
        """Create the S3 client on first use."""
        if self._client is not None:
            return self._client

        async with self._lock:
            if self._client is not None:
                return self._client

            self._session = get_session()

            client_kwargs: dict[str, Any] = {
                "region_name": self.config.region,
            }

            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url

            if self.config.access_key_id:
                client_kwargs["aws_access_key_id"] = self.config.access_key_id
                client_kwargs["aws_secret_access_key"] = self.config.secret_access_key

            if self.config.force_path_style:
                client_kwargs["config"] = Config(s3={"addressing_style": "path"})

            self._client_ctx = self._session.create_client("s3", **client_kwargs)
            self._client = await self._client_ctx.__aenter__()

            logger.info(
                "S3 client created",
                extra={
                    "bucket": self.bucket,
                    "region": self.config.region,
                    "endpoint": self.config.endpoint_url or "AWS",
                },
            )
            return self._client

    def _translate_error(self, e: Exception, key: str, per_object: bool = True) -> Exception:
        if isinstance(e, ClientError):
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in _NOT_FOUND_CODES:
                return FileNotFoundError(f"s3://{self.bucket}/{key}")
            # Denied listings stay outages
            if per_object and error_code in _DENIED_CODES:
                return PermissionError(f"Access denied: s3://{self.bucket}/{key}")
            return StorageUnavailableError(f"S3 error for {key}: {e}", backend=self.name)
        if isinstance(e, (EndpointConnectionError, BotoCoreError)):
            return StorageUnavailableError(
                f"Failed to reach S3 endpoint: {e}", backend=self.name
            )
        return e

    async def list_files(self, dir_path: str) -> list[str]:
        client = await self._get_client()
        prefix = dir_path.strip("/")
        prefix = f"{prefix}/" if prefix else ""

        names = []
        try:
            paginator = client.get_paginator("list_objects_v2")
            async for page in paginator.paginate(
                Bucket=self.bucket, Prefix=prefix, Delimiter="/"
            ):
                for obj in page.get("Contents", []):
                    name = obj["Key"][len(prefix) :]
                    if name:
                        names.append(name)
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(e, prefix, per_object=False) from e
        return names

    async def exists(self, path: str) -> bool:
        client = await self._get_client()
        key = path.strip("/")
        try:
            await client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            translated = self._translate_error(e, key)
            if not isinstance(translated, FileNotFoundError):
                raise translated from e
        except BotoCoreError as e:
            raise self._translate_error(e, key) from e

        # Not an object; may still be a non-empty prefix
        return bool(await self.list_files(key))

    async def read_file(self, path: str) -> bytes:
        client = await self._get_client()
        key = path.strip("/")
        try:
            response = await client.get_object(Bucket=self.bucket, Key=key)
            async with response["Body"] as stream:
                return await stream.read()
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(e, key) from e

    async def read_text(self, path: str) -> str:
        return (await self.read_file(path)).decode("utf-8")

    async def read_json(self, path: str) -> Any:
        return decode_json(await self.read_text(path), path)

    async def file_size(self, path: str) -> int:
        client = await self._get_client()
        key = path.strip("/")
        try:
            response = await client.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(e, key) from e
        return int(response["ContentLength"])

    async def generate_presigned_url(self, path: str, expires_in_seconds: int = 3600) -> str:
        client = await self._get_client()
        key = path.strip("/")
        try:
            return await client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            raise SignedUrlError(path, str(e)) from e

    async def close(self) -> None:
        """Close the S3 client."""
        if self._client is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing S3 client: {e}")

        self._client = None
        self._client_ctx = None
        self._session = None
