"""
Static YAML-backed share catalog.

Layout of the catalog file (CATALOG_PATH):

    shares:
      - name: sales
        id: 7d0c...                # optional
        max_rows_per_query: 5000   # optional
        schemas:
          - name: default
            tables:
              - name: orders
                location: s3://lake/sales/orders
                alias: orders_v2   # optional
                id: 91fe...        # optional

The catalog is loaded once at startup; restart the server to pick up edits.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from ..errors import NotFoundError
from .base import Share, SharedSchema, SharedTable

logger = logging.getLogger(__name__)


def _require_name(entry: dict[str, Any], what: str) -> str:
    name = entry.get("name")
    if not name:
        raise ValueError(f"Catalog {what} entry is missing 'name'")
    return str(name)


def parse_share(data: dict[str, Any]) -> Share:
    """Parse one share entry."""
    share_name = _require_name(data, "share")
    share_id = data.get("id")
    max_rows = data.get("max_rows_per_query")

    schemas = []
    for schema_data in data.get("schemas") or []:
        schema_name = _require_name(schema_data, "schema")
        tables = []
        for table_data in schema_data.get("tables") or []:
            table_name = _require_name(table_data, "table")
            location = table_data.get("location")
            if not location:
                raise ValueError(
                    f"Catalog table {share_name}.{schema_name}.{table_name} has no location"
                )
            tables.append(
                SharedTable(
                    name=table_name,
                    location=str(location),
                    schema=schema_name,
                    share=share_name,
                    id=table_data.get("id"),
                    alias=table_data.get("alias"),
                    share_id=str(share_id) if share_id else None,
                )
            )
        schemas.append(SharedSchema(name=schema_name, share=share_name, tables=tables))

    return Share(
        name=share_name,
        id=str(share_id) if share_id else None,
        max_rows_per_query=int(max_rows) if max_rows is not None else None,
        schemas=schemas,
    )


class StaticShareCatalog:
    """ShareCatalog over a fixed list of shares.

    Example:
        >>> catalog = StaticShareCatalog.from_file("shares.yaml")
        >>> [s.name for s in await catalog.list_shares()]
        ['sales', 'marketing']
    """

    def __init__(self, shares: list[Share] | None = None) -> None:
        self._shares: dict[str, Share] = {}
        for share in shares or []:
            if share.name in self._shares:
                raise ValueError(f"Duplicate share name in catalog: {share.name}")
            self._shares[share.name] = share

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StaticShareCatalog:
        return cls([parse_share(entry) for entry in data.get("shares") or []])

    @classmethod
    def from_yaml(cls, yaml_str: str) -> StaticShareCatalog:
        """Parse a catalog from a YAML string."""
        data = yaml.safe_load(yaml_str)
        if data is not None and not isinstance(data, dict):
            raise ValueError("Catalog YAML must be a mapping with a 'shares' key")
        return cls.from_dict(data or {})

    @classmethod
    def from_file(cls, path: str) -> StaticShareCatalog:
        """Load a catalog file; a missing file yields an empty catalog."""
        catalog_path = Path(path)
        if not catalog_path.exists():
            logger.warning(f"Catalog file not found, serving no shares: {path}")
            return cls()
        catalog = cls.from_yaml(catalog_path.read_text(encoding="utf-8"))
        logger.info(
            "Share catalog loaded",
            extra={"path": path, "shares": len(catalog._shares)},
        )
        return catalog

    async def list_shares(self) -> list[Share]:
        return list(self._shares.values())

    async def get_share(self, share: str) -> Share:
        try:
            return self._shares[share]
        except KeyError:
            raise NotFoundError(f"Share not found: {share}") from None

    async def list_schemas(self, share: str) -> list[SharedSchema]:
        return list((await self.get_share(share)).schemas)

    async def _get_schema(self, share: str, schema: str) -> SharedSchema:
        for candidate in await self.list_schemas(share):
            if candidate.name == schema:
                return candidate
        raise NotFoundError(f"Schema not found: {share}.{schema}")

    async def list_tables(self, share: str, schema: str) -> list[SharedTable]:
        return list((await self._get_schema(share, schema)).tables)

    async def list_all_tables(self, share: str) -> list[SharedTable]:
        return [t for s in await self.list_schemas(share) for t in s.tables]

    async def get_table(self, share: str, schema: str, table: str) -> SharedTable:
        tables = await self.list_tables(share, schema)
        for candidate in tables:
            if candidate.alias == table:
                return candidate
        for candidate in tables:
            if candidate.alias is None and candidate.name == table:
                return candidate
        raise NotFoundError(f"Table not found: {share}.{schema}.{table}")
