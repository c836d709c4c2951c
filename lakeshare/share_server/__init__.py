"""
LakeShare Server - Delta Sharing style access to log-structured tables.

This package exposes tables stored as an append-only transaction log
(`_delta_log/NNNNNNNNNNNNNNNNNNNN.json` commit files) through a versioned
query protocol:
- Log replay reconstructs the active file set, schema and version
- Time travel truncates replay at a version or wall-clock timestamp
- Change Data Feed lists every add/remove/cdf action inside a window
- Queries materialize rows or stream a signed-URL file manifest

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│ HTTP (NDJSON│────▶│  Share Catalog  │
    │ (recipient) │     │   or JSON)  │     │  (name → path)  │
    └─────────────┘     └──────┬──────┘     └─────────────────┘
                               │
                               ▼
                  ┌─────────────────────────┐
                  │   Query Orchestrator    │
                  └──────┬───────────┬──────┘
                         │           │
                         ▼           ▼
                  ┌───────────┐ ┌───────────┐
                  │ Log Replay│ │   CDF     │
                  │ + Time    │ │ Extractor │
                  │  Travel   │ │           │
                  └─────┬─────┘ └─────┬─────┘
                        └──────┬──────┘
                               ▼
            ┌──────────────────────────────────────┐
            │ Storage backend (local/S3/GCS/Azure) │
            └──────────────────────────────────────┘

Invariants:
    - Commit files are immutable; the server never writes to a table
    - Every call replays the log from scratch (no state cache)
    - Recoverable faults (bad line, bad schema, bad data file, failed
      signature) degrade the response instead of failing it

How to change safely:
    - Keep the NDJSON line order: protocol, metaData, then file actions
    - New storage backends must implement the StorageBackend protocol
    - Add log action kinds as optional fields on LogEntry
"""

from ._version import __version__

__all__ = ["__version__"]
