"""
Configuration management for LakeShare Server.

All configuration is done via environment variables - no config files inside
containers except the share catalog (CATALOG_PATH). This module provides typed
configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set LOCAL_FILE_SECRET and SHARING_PUBLIC_ENDPOINT
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_DEFAULT_LOCAL_SECRET = "local-file-secret-key"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class LocalStorageConfig:
    """Local filesystem backend configuration.

    Attributes:
        root: Directory relative table locations are resolved against
        file_secret: Secret mixed into local download tokens
        public_endpoint: Externally visible base URL of this server, used to
            build download links for local files
    """

    root: str = "."
    file_secret: str = _DEFAULT_LOCAL_SECRET
    public_endpoint: str = "http://localhost:5000"

    @classmethod
    def from_env(cls) -> LocalStorageConfig:
        """Load configuration from environment variables."""
        return cls(
            root=os.getenv("LOCAL_STORAGE_ROOT", "."),
            file_secret=os.getenv("LOCAL_FILE_SECRET", _DEFAULT_LOCAL_SECRET),
            public_endpoint=os.getenv("SHARING_PUBLIC_ENDPOINT", "http://localhost:5000"),
        )


@dataclass(frozen=True)
class S3Config:
    """S3 backend configuration.

    Attributes:
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO, LocalStack)
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
        force_path_style: Use path-style addressing (defaults on for custom endpoints)
    """

    region: str = "us-east-1"
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    force_path_style: bool = False

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        endpoint_url = os.getenv("S3_ENDPOINT")
        return cls(
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=endpoint_url,
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            force_path_style=_env_bool(
                "S3_FORCE_PATH_STYLE", "true" if endpoint_url else "false"
            ),
        )


@dataclass(frozen=True)
class GcsConfig:
    """Google Cloud Storage backend configuration.

    Attributes:
        project_id: GCP project (falls back to the client's default)
        credentials_file: Service account key file used for V4 signing
    """

    project_id: str | None = None
    credentials_file: str | None = None

    @classmethod
    def from_env(cls) -> GcsConfig:
        """Load configuration from environment variables."""
        return cls(
            project_id=os.getenv("GOOGLE_CLOUD_PROJECT"),
            credentials_file=os.getenv("GOOGLE_APPLICATION_CREDENTIALS"),
        )


@dataclass(frozen=True)
class AzureConfig:
    """Azure Blob Storage backend configuration.

    Attributes:
        connection_string: Full storage connection string
        account_key: Shared account key (required for SAS signing without
            a connection string)
    """

    connection_string: str | None = None
    account_key: str | None = None

    @classmethod
    def from_env(cls) -> AzureConfig:
        """Load configuration from environment variables."""
        return cls(
            connection_string=os.getenv("AZURE_STORAGE_CONNECTION_STRING"),
            account_key=os.getenv("AZURE_STORAGE_ACCOUNT_KEY"),
        )


@dataclass(frozen=True)
class SigningConfig:
    """Pre-signed URL configuration.

    Attributes:
        url_ttl_seconds: Lifetime of every signed URL in a manifest
    """

    url_ttl_seconds: int = 3600

    @classmethod
    def from_env(cls) -> SigningConfig:
        """Load configuration from environment variables."""
        return cls(url_ttl_seconds=int(os.getenv("SIGNED_URL_TTL_SECONDS", "3600")))


@dataclass(frozen=True)
class QueryConfig:
    """Query orchestration configuration.

    Attributes:
        default_limit: Rows returned when the request carries no limitHint
        max_limit: Hard cap applied to limitHint
        max_concurrent_reads: Data files decoded concurrently per query
        sort_files_by_path: Sort active files by path before reading, giving
            a stable row order across files
    """

    default_limit: int = 1000
    max_limit: int = 10000
    max_concurrent_reads: int = 8
    sort_files_by_path: bool = False

    @classmethod
    def from_env(cls) -> QueryConfig:
        """Load configuration from environment variables."""
        return cls(
            default_limit=int(os.getenv("QUERY_DEFAULT_LIMIT", "1000")),
            max_limit=int(os.getenv("QUERY_MAX_LIMIT", "10000")),
            max_concurrent_reads=int(os.getenv("QUERY_MAX_CONCURRENT_READS", "8")),
            sort_files_by_path=_env_bool("QUERY_SORT_FILES_BY_PATH", "false"),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        prefix: Path prefix for all protocol routes
        cors_origins: Allowed CORS origins
    """

    host: str = "0.0.0.0"
    port: int = 5000
    prefix: str = "/delta-sharing"
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("HTTP_CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "5000")),
            prefix=os.getenv("HTTP_PREFIX", "/delta-sharing").rstrip("/"),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class CatalogConfig:
    """Share catalog configuration.

    Attributes:
        path: YAML file describing shares, schemas and table locations
    """

    path: str = "shares.yaml"

    @classmethod
    def from_env(cls) -> CatalogConfig:
        """Load configuration from environment variables."""
        return cls(path=os.getenv("CATALOG_PATH", "shares.yaml"))


@dataclass(frozen=True)
class ObservabilityConfig:
    """Observability and logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    This aggregates all configuration sections and provides validation.

    Attributes:
        local: Local filesystem backend configuration
        s3: S3 configuration
        gcs: GCS configuration
        azure: Azure configuration
        signing: Pre-signed URL configuration
        query: Query orchestration configuration
        http: HTTP server configuration
        catalog: Share catalog configuration
        observability: Observability configuration
    """

    local: LocalStorageConfig = field(default_factory=LocalStorageConfig)
    s3: S3Config = field(default_factory=S3Config)
    gcs: GcsConfig = field(default_factory=GcsConfig)
    azure: AzureConfig = field(default_factory=AzureConfig)
    signing: SigningConfig = field(default_factory=SigningConfig)
    query: QueryConfig = field(default_factory=QueryConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            local=LocalStorageConfig.from_env(),
            s3=S3Config.from_env(),
            gcs=GcsConfig.from_env(),
            azure=AzureConfig.from_env(),
            signing=SigningConfig.from_env(),
            query=QueryConfig.from_env(),
            http=HttpConfig.from_env(),
            catalog=CatalogConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.signing.url_ttl_seconds <= 0:
            raise ValueError("SIGNED_URL_TTL_SECONDS must be positive")

        if self.query.default_limit <= 0:
            raise ValueError("QUERY_DEFAULT_LIMIT must be positive")
        if self.query.max_limit < self.query.default_limit:
            raise ValueError("QUERY_MAX_LIMIT must be >= QUERY_DEFAULT_LIMIT")
        if self.query.max_concurrent_reads <= 0:
            raise ValueError("QUERY_MAX_CONCURRENT_READS must be positive")

        if self.http.prefix and not self.http.prefix.startswith("/"):
            raise ValueError("HTTP_PREFIX must start with '/'")

        if bool(self.s3.access_key_id) != bool(self.s3.secret_access_key):
            raise ValueError(
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together"
            )

        if self.local.file_secret == _DEFAULT_LOCAL_SECRET:
            logger.warning(
                "LOCAL_FILE_SECRET is not set; local download tokens use the default secret"
            )

        if not os.path.exists(self.catalog.path):
            logger.warning(f"Catalog file does not exist: {self.catalog.path}")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "http_bind": f"{self.http.host}:{self.http.port}",
                "http_prefix": self.http.prefix,
                "catalog_path": self.catalog.path,
                "local_root": self.local.root,
                "public_endpoint": self.local.public_endpoint,
                "s3_region": self.s3.region,
                "s3_endpoint": self.s3.endpoint_url,
                "s3_static_credentials": bool(self.s3.access_key_id),
                "gcs_project": self.gcs.project_id,
                "azure_configured": bool(
                    self.azure.connection_string or self.azure.account_key
                ),
                "signed_url_ttl_seconds": self.signing.url_ttl_seconds,
                "query_max_limit": self.query.max_limit,
                "log_level": self.observability.log_level,
            },
        )
