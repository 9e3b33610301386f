"""
In-memory backend. Table state lives in a dict owned by the connection.
"""

from __future__ import annotations

from typing import Dict, Optional

from ..errors import TableNotInitializedError
from .local import LocalConnection, TableData


class MemoryConnection(LocalConnection):
    """Backend keeping every table in process memory."""

    scheme = "memory"

    def __init__(self, prefix: Optional[str] = None):
        super().__init__(prefix)
        self._tables: Dict[str, TableData] = {}

    async def create_connection(self) -> bool:
        return True

    async def close(self) -> None:
        self.connection = None

    def reset(self) -> None:
        """Drop every table."""
        self._tables.clear()
        self._unique_indexes.clear()

    def _exists(self, table: str) -> bool:
        return table in self._tables

    def _load(self, table: str) -> TableData:
        if table not in self._tables:
            raise TableNotInitializedError(table)
        return self._tables[table]

    def _save(self, table: str, data: TableData) -> None:
        self._tables[table] = data
