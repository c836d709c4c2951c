"""
Share catalog protocol and types.

A catalog maps share/schema/table names to table locations. The server
asks the catalog, never the storage layer, which tables exist.

Invariants:
    - Tables are addressed by alias when one is set, else by name
    - Unknown share/schema/table raises NotFoundError
    - Listing order is catalog order and stable between calls

How to change safely:
    - Protocol changes require updating all implementations
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class SharedTable:
    """A table exposed through a share.

    Attributes:
        name: Table name in the catalog
        location: Storage location of the Delta table
        schema: Owning schema name
        share: Owning share name
        id: Optional stable identifier
        alias: Optional public name (overrides name for addressing)
    """

    name: str
    location: str
    schema: str
    share: str
    id: str | None = None
    alias: str | None = None
    share_id: str | None = None

    @property
    def public_name(self) -> str:
        return self.alias or self.name

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.public_name,
            "schema": self.schema,
            "share": self.share,
        }
        if self.share_id:
            data["shareId"] = self.share_id
        if self.id:
            data["id"] = self.id
        return data


@dataclass(frozen=True)
class SharedSchema:
    """A named group of tables within a share."""

    name: str
    share: str
    tables: list[SharedTable] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "share": self.share}


@dataclass(frozen=True)
class Share:
    """A share: the unit a recipient is granted.

    Attributes:
        name: Share name
        id: Optional stable identifier
        max_rows_per_query: Optional cap applied to limitHint on row queries
        schemas: Schemas in the share
    """

    name: str
    id: str | None = None
    max_rows_per_query: int | None = None
    schemas: list[SharedSchema] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.id:
            data["id"] = self.id
        return data


@runtime_checkable
class ShareCatalog(Protocol):
    """Protocol for share catalogs.

    Example:
        >>> table = await catalog.get_table("sales", "default", "orders")
        >>> table.location
        's3://lake/sales/orders'
    """

    @abstractmethod
    async def list_shares(self) -> list[Share]:
        """All shares, in catalog order."""
        ...

    @abstractmethod
    async def get_share(self, share: str) -> Share:
        """Look up a share.

        Raises:
            NotFoundError: If the share does not exist
        """
        ...

    @abstractmethod
    async def list_schemas(self, share: str) -> list[SharedSchema]:
        """Schemas of a share.

        Raises:
            NotFoundError: If the share does not exist
        """
        ...

    @abstractmethod
    async def list_tables(self, share: str, schema: str) -> list[SharedTable]:
        """Tables of one schema.

        Raises:
            NotFoundError: If the share or schema does not exist
        """
        ...

    @abstractmethod
    async def list_all_tables(self, share: str) -> list[SharedTable]:
        """Tables of every schema in a share.

        Raises:
            NotFoundError: If the share does not exist
        """
        ...

    @abstractmethod
    async def get_table(self, share: str, schema: str, table: str) -> SharedTable:
        """Look up a table by alias or name.

        Raises:
            NotFoundError: If the share, schema or table does not exist
        """
        ...
