"""
Table inspection CLI for LakeShare.

Reads a Delta table directly from storage (no server, no catalog) and
prints JSON to stdout:
- version: Resolved table version
- metadata: Table metadata and columns
- files: Active files
- changes: Change data feed records
- query: A page of rows
- validate: Whether the location holds a readable table

Usage:
    lakeshare-inspect version ./data/orders --timestamp 2024-01-01T00:00:00Z
    lakeshare-inspect changes s3://lake/orders --starting-version 3
    lakeshare-inspect query ./data/orders --limit 20 --offset 40

Invariants:
    - Exit code 0 on success, 1 on any error
    - Output is a single JSON document

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for scripting
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from ..config import ServerConfig
from ..errors import SharingError
from ..log.changes import ChangeQuery
from ..log.replay import TimeTravel
from ..query.orchestrator import QueryOptions, QueryOrchestrator
from ..storage.registry import BackendRegistry
from ..storage.tokens import SignedUrlTokenStore

logger = logging.getLogger(__name__)


class InspectCLI:
    """Offline table inspection.

    Example:
        >>> cli = InspectCLI(ServerConfig())
        >>> await cli.version("./data/orders")
        {'version': 3}
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        self.config = config or ServerConfig()
        self.registry = BackendRegistry(
            self.config, SignedUrlTokenStore(self.config.local.file_secret)
        )
        self.orchestrator = QueryOrchestrator(
            self.registry,
            query_config=self.config.query,
            signing_config=self.config.signing,
        )

    async def version(self, location: str, time_travel: TimeTravel | None = None) -> dict:
        return {"version": await self.orchestrator.table_version(location, time_travel)}

    async def metadata(self, location: str, time_travel: TimeTravel | None = None) -> dict:
        return await self.orchestrator.table_metadata(location, time_travel)

    async def files(self, location: str, time_travel: TimeTravel | None = None) -> dict:
        snapshot = await self.orchestrator.snapshot(location, time_travel)
        return {
            "version": snapshot.state.version,
            "stats": snapshot.stats.to_dict(),
            "files": [add.to_dict() for add in snapshot.state.files],
        }

    async def changes(self, location: str, query: ChangeQuery) -> dict:
        feed = await self.orchestrator.changes(location, query)
        return {
            "startVersion": feed.changes.start_version,
            "endVersion": feed.changes.end_version,
            "changes": [record.to_dict() for record in feed.changes.records],
        }

    async def query(self, location: str, options: QueryOptions) -> dict:
        return (await self.orchestrator.query(location, options)).to_dict()

    async def validate(self, location: str) -> dict:
        return (await self.orchestrator.validate_table(location)).to_dict()

    async def close(self) -> None:
        await self.registry.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lakeshare-inspect", description="Inspect Delta tables served by LakeShare"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_time_travel(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("location", help="Table location (path, s3://, gs://, abfss://)")
        sub.add_argument("--version", type=int, help="Resolve as of this version")
        sub.add_argument("--timestamp", help="Resolve as of this ISO-8601 instant")

    add_time_travel(subparsers.add_parser("version", help="Show the table version"))
    add_time_travel(subparsers.add_parser("metadata", help="Show table metadata"))
    add_time_travel(subparsers.add_parser("files", help="List active files"))

    query_parser = subparsers.add_parser("query", help="Read a page of rows")
    add_time_travel(query_parser)
    query_parser.add_argument("--limit", type=int, default=100, help="Rows to return")
    query_parser.add_argument("--offset", type=int, default=0, help="Rows to skip")

    changes_parser = subparsers.add_parser("changes", help="Show the change data feed")
    changes_parser.add_argument("location", help="Table location")
    changes_parser.add_argument("--starting-version", type=int)
    changes_parser.add_argument("--ending-version", type=int)
    changes_parser.add_argument("--starting-timestamp")
    changes_parser.add_argument("--ending-timestamp")

    validate_parser = subparsers.add_parser("validate", help="Check a table location")
    validate_parser.add_argument("location", help="Table location")

    return parser


async def run_command(cli: InspectCLI, args: argparse.Namespace) -> Any:
    """Dispatch a parsed command."""
    try:
        if args.command == "changes":
            query = ChangeQuery.from_request(
                starting_version=args.starting_version,
                ending_version=args.ending_version,
                starting_timestamp=args.starting_timestamp,
                ending_timestamp=args.ending_timestamp,
            )
            return await cli.changes(args.location, query)
        if args.command == "validate":
            return await cli.validate(args.location)

        time_travel = TimeTravel.from_request(args.version, args.timestamp)
        if args.command == "version":
            return await cli.version(args.location, time_travel)
        if args.command == "metadata":
            return await cli.metadata(args.location, time_travel)
        if args.command == "files":
            return await cli.files(args.location, time_travel)
        if args.command == "query":
            options = QueryOptions(limit=args.limit, offset=args.offset, time_travel=time_travel)
            return await cli.query(args.location, options)
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await cli.close()


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        cli = InspectCLI(ServerConfig.from_env())
        result = asyncio.run(run_command(cli, args))
    except (SharingError, ValueError, OSError) as e:
        print(json.dumps({"error": str(e)}), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, default=str))
    if args.command == "validate" and not result.get("valid"):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
