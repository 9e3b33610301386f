"""
Backend adapter contract shared by every storage engine.

A Connection holds connection parameters plus a lazily created live handle.
Connections are shared by many models and are only mutated by their own
reconnect logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog

from ..errors import FieldNotFoundForIndexError
from ..types import Field, IndexSettings, Order
from ..where import WhereBuilder

logger = structlog.get_logger()

Row = Dict[str, Any]
Fields = Mapping[str, Field]
OrderSpec = Mapping[str, Order]


def index_name(table: str, index: IndexSettings) -> str:
    """Deterministic index name: explicit ``name`` or ``<table>_<fields>_idx``."""
    if index.name:
        return index.name
    return f"{table}_{'_'.join(index.fields)}_idx"


def validate_indexes(table: str, fields: Fields, indexes: Sequence[IndexSettings]) -> None:
    """Reject indexes over undeclared fields before any DDL runs."""
    for index in indexes:
        for field in index.fields:
            if field not in fields:
                raise FieldNotFoundForIndexError(field, index_name(table, index))


class Connection(ABC):
    """Abstract base class for storage backends."""

    scheme: str = ""

    def __init__(self, prefix: Optional[str] = None):
        self.connection: Any = None
        self.prefix = prefix
        self.logger = logger.bind(backend=self.__class__.__name__)

    async def init(self) -> "Connection":
        """Open the live handle eagerly."""
        await self.get_connection()
        return self

    @abstractmethod
    async def create_connection(self) -> Any:
        """Create and return a new live handle."""

    async def get_connection(self) -> Any:
        """Return the live handle, reconnecting once if it has been dropped."""
        if self.connection is None:
            self.logger.debug("connecting")
            self.connection = await self.create_connection()
        return self.connection

    @abstractmethod
    async def close(self) -> None:
        """Close and clear the live handle."""

    def get_table(self, table: str) -> str:
        """Apply the connection's table prefix."""
        if not self.prefix:
            return table
        return f"{self.prefix}_{table}"

    @abstractmethod
    async def initialize_table(
        self,
        table: str,
        fields: Fields,
        version: int,
        indexes: Sequence[IndexSettings] = (),
    ) -> None:
        """Create or reconcile ``table``; safe to call repeatedly."""

    @abstractmethod
    async def search(
        self,
        table: str,
        where: WhereBuilder,
        order: Optional[OrderSpec] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Row]:
        """Return raw rows matching ``where``."""

    @abstractmethod
    async def insert(self, table: str, fields: Fields, data: Mapping[str, Any]) -> Any:
        """Insert a row and return its id."""

    @abstractmethod
    async def update(self, table: str, id: Any, data: Mapping[str, Any], fields: Fields) -> Any:
        """Update the row with ``id`` and return the id."""

    @abstractmethod
    async def delete(self, table: str, id: Any) -> None:
        """Delete the row with ``id``; a missing row is not an error."""

    @abstractmethod
    async def count(self, table: str, where: WhereBuilder) -> int:
        """Count rows matching ``where``."""
