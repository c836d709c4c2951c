"""
Error types for LakeShare Server.

Fatal errors terminate the calling request with an error response:
- MissingLogError: No commit files under the table's log directory
- MissingMetadataError: Log exists but never committed a metadata action
- StorageUnavailableError: The storage backend cannot be reached
- InvalidRequestError: Request parameters cannot be interpreted
- NotFoundError: Share, schema or table unknown to the catalog

Recoverable errors are raised at the point of failure and caught by the
caller one level up, which logs them and degrades the result:
- MalformedActionError: One log line failed to parse (line skipped)
- MalformedSchemaError: Schema string unparsable (empty column list)
- FileDecodeError: One data file could not be decoded (rows omitted)
- SignedUrlError: One file's URL could not be minted (file omitted)

Invariants:
    - All errors inherit from SharingError
    - Each error carries a stable code for the wire response
    - Recoverable errors never reach the protocol client
"""

from __future__ import annotations

from typing import Any


class SharingError(Exception):
    """Base exception for all LakeShare errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SHARING_ERROR"
        self.details = details or {}


class MissingLogError(SharingError):
    """No commit files were found for a table."""

    def __init__(self, location: str) -> None:
        super().__init__(
            f"No Delta log files found at {location}",
            code="MISSING_LOG",
            details={"location": location},
        )
        self.location = location


class MissingMetadataError(SharingError):
    """The log has commits but none of them carried a metadata action."""

    def __init__(self, location: str) -> None:
        super().__init__(
            f"No metadata found in Delta log at {location}",
            code="MISSING_METADATA",
            details={"location": location},
        )
        self.location = location


class StorageUnavailableError(SharingError):
    """The storage backend itself is unreachable."""

    def __init__(self, message: str, backend: str | None = None) -> None:
        super().__init__(message, code="STORAGE_UNAVAILABLE", details={"backend": backend})
        self.backend = backend


class InvalidRequestError(SharingError):
    """Request parameters are malformed (bad timestamp, bad body)."""

    def __init__(self, message: str, field_name: str | None = None) -> None:
        super().__init__(message, code="INVALID_REQUEST", details={"field": field_name})
        self.field_name = field_name


class NotFoundError(SharingError):
    """A share, schema or table is not known to the catalog."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="NOT_FOUND")


class MalformedActionError(SharingError):
    """A single commit line could not be parsed as an action record."""

    def __init__(self, message: str, line: str | None = None) -> None:
        super().__init__(message, code="MALFORMED_ACTION", details={"line": line})
        self.line = line


class MalformedSchemaError(SharingError):
    """A metadata schemaString could not be parsed into columns."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="MALFORMED_SCHEMA")


class FileDecodeError(SharingError):
    """A data file could not be decoded into rows."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Failed to decode data file {path}: {reason}",
            code="FILE_DECODE_FAILURE",
            details={"path": path},
        )
        self.path = path


class SignedUrlError(SharingError):
    """A pre-signed URL could not be generated for a file."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Failed to generate pre-signed URL for {path}: {reason}",
            code="SIGNED_URL_FAILURE",
            details={"path": path},
        )
        self.path = path
