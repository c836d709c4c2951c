"""
LakeShare Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies, in-memory storage)
- integration/: Integration tests (local filesystem, aiohttp test server)
"""
