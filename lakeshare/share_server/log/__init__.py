"""
Delta transaction log engine for LakeShare.

This package reads a table's `_delta_log/` directory and answers two
questions about it:
- What does the table look like at version N / time T? (replay.py)
- Which files changed between two points in history? (changes.py)

Invariants:
    - The log is never written; commit files are immutable
    - Every call replays from the commit listing; nothing is cached

How to change safely:
    - Action parsing lives in actions.py; keep it tolerant of unknown keys
    - Cutoff and window rules are covered by tests/unit/test_replay.py and
      tests/unit/test_changes.py
"""

from .actions import (
    AddFile,
    Column,
    CommitInfo,
    LogEntry,
    ProtocolVersion,
    RemoveFile,
    TableMetadata,
    columns_or_empty,
    parse_commit,
    parse_log_line,
    parse_schema,
)
from .changes import ChangeDataFeedExtractor, ChangeQuery, ChangeRecord, ChangeSet, ChangeType
from .listing import (
    COMMIT_FILE_PATTERN,
    DELTA_LOG_DIR,
    CommitFile,
    list_commit_files,
    parse_timestamp_ms,
    read_commit,
)
from .replay import LogReplayEngine, TableState, TableStats, TimeTravel

__all__ = [
    # Actions
    "AddFile",
    "RemoveFile",
    "TableMetadata",
    "CommitInfo",
    "ProtocolVersion",
    "LogEntry",
    "Column",
    "parse_log_line",
    "parse_commit",
    "parse_schema",
    "columns_or_empty",
    # Listing
    "DELTA_LOG_DIR",
    "COMMIT_FILE_PATTERN",
    "CommitFile",
    "list_commit_files",
    "read_commit",
    "parse_timestamp_ms",
    # Replay
    "LogReplayEngine",
    "TableState",
    "TableStats",
    "TimeTravel",
    # Change data feed
    "ChangeDataFeedExtractor",
    "ChangeQuery",
    "ChangeRecord",
    "ChangeSet",
    "ChangeType",
]
