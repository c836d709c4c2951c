"""
CLI tools for LakeShare administration.

This module provides command-line tools for:
- inspect: Read table versions, files, changes and rows straight from storage

Invariants:
    - Tools work offline (no running server required)
    - Tools never write to a table
"""

from .inspect_cli import InspectCLI

__all__ = ["InspectCLI"]
