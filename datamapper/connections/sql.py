"""
SQL lowering of predicate trees and the shared SQL backend.

``SqlWhereCompiler`` turns a predicate tree into a ``(sql, values)`` fragment
using the dialect's identifier quoting and placeholder syntax. Placeholders are
numbered from one counter shared by the whole statement, so fragments can be
followed by LIMIT/OFFSET or SET lists that keep counting.

``SqlConnection`` implements the backend contract on top of the dialect hooks
(``_query``, ``_insert_returning_id``, ``_live_columns``, ``_ensure_index`` and
the DDL builders) and owns the schema reconciliation state machine:

1. no version record   -> CREATE TABLE, insert version row
2. same version        -> nothing to do
3. different version   -> ADD COLUMN for each declared field missing live,
                          then ADD CONSTRAINT for new foreign keys,
                          then store the new version

Declared indexes are ensured (skip-if-exists) after every state. Existing
columns are never dropped or altered. No transaction wraps these steps, so
each one is written to be safe to re-run.
"""

from __future__ import annotations

import datetime
from abc import abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence

from ..errors import UndefinedBindValueError, UnknownComparatorError, UnknownPredicateKindError
from ..types import Field, FieldType, IndexSettings, Order, auto_field_name
from ..where import (
    Comparator,
    Compare,
    Group,
    Node,
    WhereBuilder,
    WhereKind,
    coerce_comparator,
    is_sequence_value,
    sequence_items,
)
from .base import Connection, Fields, OrderSpec, Row, index_name, validate_indexes

VERSIONS_TABLE = "table_versions"

_ORDERING_OPERATORS = {
    Comparator.LT: "<",
    Comparator.LTE: "<=",
    Comparator.GT: ">",
    Comparator.GTE: ">=",
}

_BINDABLE_TYPES = (
    bool,
    int,
    float,
    str,
    bytes,
    Decimal,
    datetime.date,
    datetime.datetime,
    datetime.time,
)


class SqlFragment(NamedTuple):
    sql: str
    values: List[Any]


class BindState:
    """Collects bound values and hands out numbered placeholders."""

    def __init__(self, compiler: "SqlWhereCompiler", start: int = 0):
        self.compiler = compiler
        self.start = start
        self.values: List[Any] = []

    @property
    def position(self) -> int:
        return self.start + len(self.values)

    def bind(self, value: Any) -> str:
        self.values.append(value)
        return self.compiler.placeholder(self.position)


class SqlWhereCompiler:
    """Base compiler; dialects override quoting and placeholders."""

    quote_char = '"'
    true_literal = "TRUE"
    false_literal = "FALSE"

    def quote(self, identifier: str) -> str:
        escaped = identifier.replace(self.quote_char, self.quote_char * 2)
        return f"{self.quote_char}{escaped}{self.quote_char}"

    def placeholder(self, position: int) -> str:
        """Placeholder for the 1-based bind ``position``."""
        raise NotImplementedError

    def compile_where(self, where: WhereBuilder, position: int = 0) -> SqlFragment:
        """Compile a whole tree; an empty root yields an empty fragment."""
        if where.is_empty():
            return SqlFragment("", [])
        return self.compile(where.root, position)

    def compile(self, node: Node, position: int = 0) -> SqlFragment:
        """Compile ``node``; placeholders continue after ``position``."""
        state = BindState(self, position)
        sql = self._compile(node, state)
        return SqlFragment(sql, state.values)

    def _compile(self, node: Node, state: BindState) -> str:
        kind = getattr(node, "kind", None)
        if kind == WhereKind.COMPARE and isinstance(node, Compare):
            return self._compile_compare(node, state)
        if kind in (WhereKind.AND, WhereKind.OR) and isinstance(node, Group):
            if not node.children:
                return self.true_literal if kind == WhereKind.AND else self.false_literal
            joiner = " AND " if kind == WhereKind.AND else " OR "
            return joiner.join(f"({self._compile(child, state)})" for child in node.children)
        raise UnknownPredicateKindError(kind)

    def _compile_compare(self, node: Compare, state: BindState) -> str:
        comparator = coerce_comparator(node.comparator)
        if comparator is None:
            raise UnknownComparatorError(node.comparator)

        column = self.quote(node.field)
        if comparator == Comparator.EQ:
            return self.equality(column, node.value, state)
        if comparator == Comparator.NE:
            return self.equality(column, node.value, state, negated=True)
        return f"{column} {_ORDERING_OPERATORS[comparator]} {state.bind(node.value)}"

    def equality(self, column: str, value: Any, state: BindState, negated: bool = False) -> str:
        """Lower EQ/NE so that NE is always the exact negation of EQ."""
        if is_sequence_value(value):
            items = sequence_items(value)
            if not items:
                return self.true_literal if negated else self.false_literal
            # NULL never matches IN (...), so a None member becomes IS NULL
            has_null = any(item is None for item in items)
            items = tuple(item for item in items if item is not None)
            if not items:
                return f"{column} IS NOT NULL" if negated else f"{column} IS NULL"
            placeholders = ", ".join(state.bind(item) for item in items)
            if negated:
                if has_null:
                    return f"({column} NOT IN ({placeholders}) AND {column} IS NOT NULL)"
                return f"({column} NOT IN ({placeholders}) OR {column} IS NULL)"
            if has_null:
                return f"({column} IN ({placeholders}) OR {column} IS NULL)"
            return f"{column} IN ({placeholders})"
        if value is None:
            return f"{column} IS NOT NULL" if negated else f"{column} IS NULL"
        if value is False:
            if negated:
                return f"({column} != {self.false_literal} AND {column} IS NOT NULL)"
            return f"({column} = {self.false_literal} OR {column} IS NULL)"
        if negated:
            return f"({column} != {state.bind(value)} OR {column} IS NULL)"
        return f"{column} = {state.bind(value)}"


def check_bind_values(query: str, values: Optional[Sequence[Any]]) -> None:
    """Refuse to send a query carrying a value the driver cannot bind."""
    for value in values or ():
        if value is not None and not isinstance(value, _BINDABLE_TYPES):
            raise UndefinedBindValueError(query, list(values or ()))


class SqlConnection(Connection):
    """Backend contract implemented with generated SQL."""

    compiler: SqlWhereCompiler
    versions_table_ddl = "(name VARCHAR(255), version INT)"

    # -- dialect hooks -----------------------------------------------------

    @abstractmethod
    async def _query(self, query: str, values: Optional[Sequence[Any]] = None) -> List[Row]:
        """Run ``query`` and return result rows as dicts."""

    @abstractmethod
    async def _insert_returning_id(self, table: str, data: Mapping[str, Any]) -> Any:
        """Insert ``data`` into the physical ``table`` and return the row id."""

    @abstractmethod
    async def _live_columns(self, table: str) -> List[str]:
        """Column names currently present on the physical ``table``."""

    @abstractmethod
    async def _ensure_index(self, table: str, name: str, index: IndexSettings) -> None:
        """Create the index unless one with ``name`` already exists."""

    @abstractmethod
    def column_type(self, field: Field) -> str:
        """Column type for a field."""

    @abstractmethod
    def column_definition(self, name: str, field: Field) -> str:
        """Full column definition used by CREATE TABLE and ADD COLUMN."""

    @abstractmethod
    def create_table_sql(self, table: str, fields: Fields) -> str:
        """CREATE TABLE statement for the physical ``table``."""

    # -- shared SQL helpers ------------------------------------------------

    def quote(self, identifier: str) -> str:
        return self.compiler.quote(identifier)

    def placeholder(self, position: int) -> str:
        return self.compiler.placeholder(position)

    def foreign_key_constraint_name(self, table: str, field: str) -> str:
        return f"fk_{table}_{field}"

    def foreign_key_sql(self, field_name: str, field: Field) -> str:
        foreign = field.foreign
        foreign_table = self.get_table(foreign.table.get_table())
        return (
            f"FOREIGN KEY ({self.quote(field_name)}) "
            f"REFERENCES {self.quote(foreign_table)} ({self.quote(foreign.field)})"
        )

    def order_clause(self, order: Optional[OrderSpec]) -> str:
        if not order:
            return f" ORDER BY {self.quote('id')} ASC"
        parts = [self.order_term(field, Order(direction)) for field, direction in order.items()]
        return " ORDER BY " + ", ".join(parts)

    def order_term(self, field: str, direction: Order) -> str:
        return f"{self.quote(field)} {'ASC' if direction == Order.ASC else 'DESC'}"

    def limit_clause(self, limit: Optional[int], offset: Optional[int], state: BindState) -> str:
        clause = ""
        if limit is not None:
            clause += f" LIMIT {state.bind(int(limit))}"
        if offset:
            clause += f" OFFSET {state.bind(int(offset))}"
        return clause

    # -- reconciliation ----------------------------------------------------

    async def _ensure_versions_table(self) -> str:
        versions = self.get_table(VERSIONS_TABLE)
        await self._query(
            f"CREATE TABLE IF NOT EXISTS {self.quote(versions)} {self.versions_table_ddl}"
        )
        return versions

    async def _stored_version(self, versions: str, table: str) -> Optional[int]:
        rows = await self._query(
            f"SELECT version FROM {self.quote(versions)} WHERE name = {self.placeholder(1)}",
            [table],
        )
        if not rows:
            return None
        return rows[0]["version"]

    async def initialize_table(
        self,
        table: str,
        fields: Fields,
        version: int,
        indexes: Sequence[IndexSettings] = (),
    ) -> None:
        physical = self.get_table(table)
        validate_indexes(physical, fields, indexes)

        versions = await self._ensure_versions_table()
        stored = await self._stored_version(versions, physical)

        if stored is None:
            self.logger.info("table_created", table=physical, version=version)
            await self._query(self.create_table_sql(physical, fields))
            await self._query(
                f"INSERT INTO {self.quote(versions)} (version, name) "
                f"VALUES ({self.placeholder(1)}, {self.placeholder(2)})",
                [version, physical],
            )
        elif stored != version:
            self.logger.info(
                "version_mismatch", table=physical, expected=version, found=stored
            )
            await self._add_missing_columns(physical, fields)
            await self._query(
                f"UPDATE {self.quote(versions)} SET version = {self.placeholder(1)} "
                f"WHERE name = {self.placeholder(2)}",
                [version, physical],
            )
            self.logger.info("version_mismatch_resolved", table=physical, version=version)

        for index in indexes:
            await self._ensure_index(physical, index_name(physical, index), index)

    async def _add_missing_columns(self, table: str, fields: Fields) -> List[str]:
        live = set(await self._live_columns(table))
        missing = [name for name in fields if name not in live]
        if not missing:
            return missing

        for name in missing:
            await self._query(
                f"ALTER TABLE {self.quote(table)} "
                f"ADD COLUMN {self.column_definition(name, fields[name])}"
            )
        self.logger.info("columns_added", table=table, fields=missing)

        for name in missing:
            field = fields[name]
            if field.foreign is None:
                continue
            constraint = self.foreign_key_constraint_name(table, name)
            await self._query(
                f"ALTER TABLE {self.quote(table)} "
                f"ADD CONSTRAINT {self.quote(constraint)} {self.foreign_key_sql(name, field)}"
            )
        return missing

    # -- data operations ---------------------------------------------------

    def select_sql(
        self,
        table: str,
        where: WhereBuilder,
        order: Optional[OrderSpec] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> SqlFragment:
        """Build the SELECT statement for a search."""
        fragment = self.compiler.compile_where(where)
        query = f"SELECT * FROM {self.quote(self.get_table(table))}"
        if fragment.sql:
            query += " WHERE " + fragment.sql
        query += self.order_clause(order)

        state = BindState(self.compiler, len(fragment.values))
        query += self.limit_clause(limit, offset, state)
        return SqlFragment(query, fragment.values + state.values)

    async def search(
        self,
        table: str,
        where: WhereBuilder,
        order: Optional[OrderSpec] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Row]:
        query, values = self.select_sql(table, where, order, limit, offset)
        return await self._query(query, values)

    async def count(self, table: str, where: WhereBuilder) -> int:
        fragment = self.compiler.compile_where(where)
        query = f"SELECT COUNT(*) AS {self.quote('count')} FROM {self.quote(self.get_table(table))}"
        if fragment.sql:
            query += " WHERE " + fragment.sql
        rows = await self._query(query, fragment.values)
        return int(rows[0]["count"])

    async def insert(self, table: str, fields: Fields, data: Mapping[str, Any]) -> Any:
        new_id = await self._insert_returning_id(self.get_table(table), data)
        if auto_field_name(dict(fields)) is None:
            return data.get("id")
        return new_id

    async def update(self, table: str, id: Any, data: Mapping[str, Any], fields: Fields) -> Any:
        if not data:
            return id
        state = BindState(self.compiler)
        assignments = ", ".join(
            f"{self.quote(key)} = {state.bind(value)}" for key, value in data.items()
        )
        query = (
            f"UPDATE {self.quote(self.get_table(table))} SET {assignments} "
            f"WHERE {self.quote('id')} = {state.bind(id)}"
        )
        await self._query(query, state.values)
        return id

    async def delete(self, table: str, id: Any) -> None:
        query = (
            f"DELETE FROM {self.quote(self.get_table(table))} "
            f"WHERE {self.quote('id')} = {self.placeholder(1)}"
        )
        await self._query(query, [id])


def string_column_type(field: Field) -> str:
    if field.size:
        return f"VARCHAR({field.size})"
    return "TEXT"


BASE_COLUMN_TYPES: Dict[FieldType, str] = {
    FieldType.INT: "INT",
    FieldType.BIGINT: "BIGINT",
    FieldType.JSON: "TEXT",
    FieldType.BOOLEAN: "BOOLEAN",
}
