"""
Commit file discovery and loading.

A table's transaction log lives in `_delta_log/` beneath the table root.
Commit files are named by zero-padded version (00000000000000000003.json);
checkpoints, CRC files and temp files are ignored.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from ..errors import InvalidRequestError, MissingLogError
from ..storage.base import StorageBackend, join_path
from .actions import LogEntry, parse_commit

logger = logging.getLogger(__name__)

DELTA_LOG_DIR = "_delta_log"
COMMIT_FILE_PATTERN = re.compile(r"^(\d+)\.json$")


@dataclass(frozen=True)
class CommitFile:
    """A commit file in the log directory.

    Attributes:
        version: Numeric commit version
        name: File name within _delta_log/
        path: Full backend path
    """

    version: int
    name: str
    path: str


async def list_commit_files(
    backend: StorageBackend, base_path: str, location: str | None = None
) -> list[CommitFile]:
    """List a table's commit files in ascending version order.

    Args:
        backend: Storage backend serving the table
        base_path: Table root path within the backend
        location: Table location for error messages (defaults to base_path)

    Returns:
        Commit files sorted by numeric version

    Raises:
        MissingLogError: If no commit files exist
    """
    log_dir = join_path(base_path, DELTA_LOG_DIR)
    names = await backend.list_files(log_dir)

    commits = []
    for name in names:
        match = COMMIT_FILE_PATTERN.match(name)
        if match:
            commits.append(
                CommitFile(version=int(match.group(1)), name=name, path=join_path(log_dir, name))
            )

    if not commits:
        raise MissingLogError(location or base_path)

    commits.sort(key=lambda c: c.version)
    return commits


async def read_commit(backend: StorageBackend, commit: CommitFile) -> list[LogEntry]:
    """Read and parse one commit file.

    Read failures propagate; malformed lines are skipped.
    """
    text = await backend.read_text(commit.path)
    return parse_commit(text, version=commit.version)


def parse_timestamp_ms(
    value: str | int | None, field_name: str = "timestamp"
) -> int | None:
    """Convert an ISO-8601 timestamp (or epoch ms) to epoch milliseconds.

    Naive timestamps are treated as UTC; a trailing 'Z' is accepted.

    Raises:
        InvalidRequestError: If the value cannot be parsed
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidRequestError(f"Invalid {field_name}: {value!r}", field_name=field_name)
    if isinstance(value, int):
        return value

    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise InvalidRequestError(
            f"Invalid {field_name}: {value!r} is not an ISO-8601 timestamp",
            field_name=field_name,
        ) from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return round(parsed.timestamp() * 1000)
