"""
LakeShare Server - Main entry point.

This module starts the sharing server with all components:
- Share catalog (YAML, CATALOG_PATH)
- Backend registry and local download token store
- Query orchestrator (log replay, change feed, row reads)
- HTTP server (Delta Sharing REST protocol)

Usage:
    python -m lakeshare.share_server.main
    lakeshare-server

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The catalog is loaded before the HTTP server accepts requests
    - Graceful shutdown closes the HTTP listener before storage clients

How to change safely:
    - Add new components with enable/disable flags
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter
from aiohttp import web

from .api.http_server import SharingService, create_http_app
from .catalog import StaticShareCatalog
from .config import ServerConfig
from .query.orchestrator import QueryOrchestrator
from .storage.registry import BackendRegistry
from .storage.tokens import SignedUrlTokenStore

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)


class Server:
    """LakeShare server orchestrator.

    Manages the lifecycle of all server components.

    Attributes:
        config: Server configuration
        tokens: Local download token store
        registry: Storage backend cache
        catalog: Share catalog
        orchestrator: Query orchestrator

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.tokens: SignedUrlTokenStore | None = None
        self.registry: BackendRegistry | None = None
        self.catalog: StaticShareCatalog | None = None
        self.orchestrator: QueryOrchestrator | None = None
        self._runner: web.AppRunner | None = None

    def build_service(self) -> SharingService:
        """Create the components shared by every request."""
        self.tokens = SignedUrlTokenStore(self.config.local.file_secret)
        self.registry = BackendRegistry(self.config, self.tokens)
        self.catalog = StaticShareCatalog.from_file(self.config.catalog.path)
        self.orchestrator = QueryOrchestrator(
            self.registry,
            query_config=self.config.query,
            signing_config=self.config.signing,
        )
        return SharingService(
            catalog=self.catalog,
            orchestrator=self.orchestrator,
            tokens=self.tokens,
            config=self.config,
        )

    async def start(self) -> None:
        """Start the server and wait for a shutdown request."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting LakeShare server")
        self.config.log_config()

        try:
            service = self.build_service()

            app = create_http_app(service)
            self._runner = web.AppRunner(app)
            await self._runner.setup()
            site = web.TCPSite(self._runner, self.config.http.host, self.config.http.port)
            await site.start()

            self._running = True
            logger.info(
                "LakeShare server started successfully",
                extra={
                    "bind": f"{self.config.http.host}:{self.config.http.port}",
                    "prefix": self.config.http.prefix,
                },
            )

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self._release()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping LakeShare server")
        await self._release()
        self._running = False
        logger.info("LakeShare server stopped")

    async def _release(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        if self.registry:
            await self.registry.close()

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config)

    # Setup signal handlers
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    # Create server
    server = Server(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    # Run server
    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
