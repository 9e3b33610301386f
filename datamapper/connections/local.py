"""
Shared implementation for backends that evaluate queries in-process.

Table state is a mapping ``{"auto": {field: next_id}, "data": [row, ...]}``.
Subclasses only decide where that mapping lives.

Writes are a full read-modify-write of the table state without any locking:
concurrent inserts/updates/deletes on the same table can lose updates.
Callers needing atomicity must serialize access themselves.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..errors import UniqueConstraintError
from ..types import IndexSettings, auto_field_name
from ..where import WhereBuilder
from .base import Connection, Fields, OrderSpec, Row, index_name, validate_indexes
from .matching import apply_window, loosely_equal, matches, sort_rows, validate_tree

TableData = Dict[str, Any]


def empty_table() -> TableData:
    return {"auto": {}, "data": []}


class LocalConnection(Connection):
    """Connection whose rows are filtered, sorted and paged in Python."""

    def __init__(self, prefix: Optional[str] = None):
        super().__init__(prefix)
        self._unique_indexes: Dict[str, List[Tuple[str, List[str]]]] = {}

    @abstractmethod
    def _exists(self, table: str) -> bool:
        """Whether state exists for the physical table name."""

    @abstractmethod
    def _load(self, table: str) -> TableData:
        """Read state for the physical table name."""

    @abstractmethod
    def _save(self, table: str, data: TableData) -> None:
        """Persist state for the physical table name."""

    async def initialize_table(
        self,
        table: str,
        fields: Fields,
        version: int,
        indexes: Sequence[IndexSettings] = (),
    ) -> None:
        physical = self.get_table(table)
        validate_indexes(physical, fields, indexes)
        await self.get_connection()

        if not self._exists(physical):
            self.logger.info("table_created", table=physical, version=version)
            self._save(physical, empty_table())
        else:
            data = self._load(physical)
            added = set()
            for row in data["data"]:
                for name in fields:
                    if name not in row:
                        row[name] = None
                        added.add(name)
            if added:
                self.logger.info(
                    "table_backfilled", table=physical, fields=sorted(added), version=version
                )
                self._save(physical, data)

        self._unique_indexes[physical] = [
            (index_name(physical, index), list(index.fields))
            for index in indexes
            if index.unique
        ]

    def _check_unique(
        self, table: str, rows: List[Row], candidate: Mapping[str, Any], skip: Optional[Row] = None
    ) -> None:
        for name, index_fields in self._unique_indexes.get(table, []):
            values = [candidate.get(field) for field in index_fields]
            # rows with a null in the index never collide, as in SQL
            if any(value is None for value in values):
                continue
            for row in rows:
                if row is skip:
                    continue
                if all(loosely_equal(value, row.get(field)) for value, field in zip(values, index_fields)):
                    raise UniqueConstraintError(name, values)

    def _find(self, rows: List[Row], id: Any) -> Optional[int]:
        for position, row in enumerate(rows):
            if loosely_equal(id, row.get("id")):
                return position
        return None

    async def search(
        self,
        table: str,
        where: WhereBuilder,
        order: Optional[OrderSpec] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Row]:
        validate_tree(where.root)
        await self.get_connection()
        data = self._load(self.get_table(table))

        matching = [dict(row) for row in data["data"] if matches(where.root, row)]
        if order:
            matching = sort_rows(matching, order)
        return apply_window(matching, limit, offset)

    async def count(self, table: str, where: WhereBuilder) -> int:
        validate_tree(where.root)
        await self.get_connection()
        data = self._load(self.get_table(table))
        return sum(1 for row in data["data"] if matches(where.root, row))

    async def insert(self, table: str, fields: Fields, data: Mapping[str, Any]) -> Any:
        await self.get_connection()
        physical = self.get_table(table)
        state = self._load(physical)

        row: Row = {name: None for name in fields}
        new_id = data.get("id")
        auto = auto_field_name(dict(fields))
        next_counter = None
        if auto is not None:
            counter = state["auto"].get(auto) or 1
            if data.get(auto) is None:
                new_id = counter
                next_counter = counter + 1
            else:
                new_id = data[auto]
                if isinstance(new_id, int) and new_id >= counter:
                    next_counter = new_id + 1

        row.update(data)
        if auto is not None:
            row[auto] = new_id
        if row.get("id") is not None and self._find(state["data"], row["id"]) is not None:
            raise UniqueConstraintError(f"{physical}_pkey", [row["id"]])
        self._check_unique(physical, state["data"], row)

        # state is the live table on the memory backend
        if next_counter is not None:
            state["auto"][auto] = next_counter
        state["data"].append(row)
        self._save(physical, state)
        return new_id

    async def update(self, table: str, id: Any, data: Mapping[str, Any], fields: Fields) -> Any:
        await self.get_connection()
        physical = self.get_table(table)
        state = self._load(physical)

        position = self._find(state["data"], id)
        if position is None:
            return id

        row = state["data"][position]
        candidate = {**row, **data}
        self._check_unique(physical, state["data"], candidate, skip=row)
        row.update(data)

        self._save(physical, state)
        return id

    async def delete(self, table: str, id: Any) -> None:
        await self.get_connection()
        physical = self.get_table(table)
        state = self._load(physical)

        position = self._find(state["data"], id)
        if position is None:
            return
        del state["data"][position]
        self._save(physical, state)
