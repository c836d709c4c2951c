"""
Share catalog for LakeShare.

Maps share/schema/table names to Delta table locations.
"""

from .base import Share, ShareCatalog, SharedSchema, SharedTable
from .static import StaticShareCatalog, parse_share

__all__ = [
    # Protocol and types
    "ShareCatalog",
    "Share",
    "SharedSchema",
    "SharedTable",
    # Implementations
    "StaticShareCatalog",
    "parse_share",
]
