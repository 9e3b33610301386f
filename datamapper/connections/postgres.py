"""
PostgreSQL backend on top of asyncpg.

Placeholders are ``$1``, ``$2``, ... numbered across the whole statement.
Sorting pins NULLs first on ASC and last on DESC so results line up with the
in-process backends.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from sqlalchemy.engine import make_url

from ..errors import ProtocolMismatchError, SqlSyntaxError
from ..types import Field, FieldType, IndexSettings, Order
from .base import Fields, Row
from .sql import BASE_COLUMN_TYPES, SqlConnection, SqlWhereCompiler, check_bind_values, string_column_type

PostgresParams = Dict[str, Any]


class PostgresWhereCompiler(SqlWhereCompiler):
    quote_char = '"'

    def placeholder(self, position: int) -> str:
        return f"${position}"


def parse_postgres_params(data: Union[str, Mapping[str, Any]]) -> PostgresParams:
    """Normalize ``{"url": ...}`` or a URL string into asyncpg keyword args."""
    if isinstance(data, str):
        data = {"url": data}
    if "url" not in data:
        params = {
            "host": data.get("host", "localhost"),
            "user": data.get("username") or data.get("user"),
            "password": data.get("password"),
            "database": data.get("database"),
        }
        if data.get("port"):
            params["port"] = int(data["port"])
        return params

    url = make_url(data["url"])
    backend = url.get_backend_name()
    if backend not in ("postgres", "postgresql"):
        raise ProtocolMismatchError("postgres", backend)

    # asyncpg only understands the plain postgresql:// scheme
    url = url.set(drivername="postgresql")
    return {"dsn": url.render_as_string(hide_password=False)}


class PostgresConnection(SqlConnection):
    """Backend issuing PostgreSQL dialect SQL through asyncpg."""

    scheme = "postgres"
    compiler = PostgresWhereCompiler()

    def __init__(self, data: Union[str, Mapping[str, Any]], prefix: Optional[str] = None):
        super().__init__(prefix)
        self.params = parse_postgres_params(data)

    async def create_connection(self) -> Any:
        import asyncpg

        return await asyncpg.connect(**self.params)

    async def close(self) -> None:
        connection = self.connection
        self.connection = None
        if connection is not None and not connection.is_closed():
            await connection.close()

    async def _query(self, query: str, values: Optional[Sequence[Any]] = None) -> List[Row]:
        import asyncpg

        check_bind_values(query, values)
        connection = await self.get_connection()
        try:
            records = await connection.fetch(query, *(values or ()))
        except (asyncpg.ConnectionDoesNotExistError, asyncpg.InterfaceError, ConnectionResetError) as e:
            self.logger.warning("connection_lost", error=str(e))
            await self.close()
            raise
        except asyncpg.PostgresSyntaxError as e:
            raise SqlSyntaxError(query, str(e)) from e
        return [dict(record) for record in records]

    def column_type(self, field: Field) -> str:
        if field.type == FieldType.STRING:
            return string_column_type(field)
        return BASE_COLUMN_TYPES[field.type]

    def column_definition(self, name: str, field: Field) -> str:
        if field.is_auto:
            serial = "BIGSERIAL" if field.type == FieldType.BIGINT else "SERIAL"
            return f"{self.quote(name)} {serial} PRIMARY KEY"
        definition = f"{self.quote(name)} {self.column_type(field)}"
        if field.is_required:
            definition += " NOT NULL"
        return definition

    def create_table_sql(self, table: str, fields: Fields) -> str:
        parts = []
        for name, field in fields.items():
            definition = self.column_definition(name, field)
            if field.foreign is not None:
                foreign_table = self.get_table(field.foreign.table.get_table())
                definition += (
                    f" REFERENCES {self.quote(foreign_table)} ({self.quote(field.foreign.field)})"
                )
            parts.append(definition)
        return f"CREATE TABLE {self.quote(table)} ({', '.join(parts)})"

    async def _live_columns(self, table: str) -> List[str]:
        rows = await self._query(
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_name = $1 ORDER BY ordinal_position ASC",
            [table],
        )
        return [row["column_name"] for row in rows]

    async def _ensure_index(self, table: str, name: str, index: IndexSettings) -> None:
        columns = ", ".join(self.quote(field) for field in index.fields)
        unique = "UNIQUE " if index.unique else ""
        await self._query(
            f"CREATE {unique}INDEX IF NOT EXISTS {self.quote(name)} ON {self.quote(table)} ({columns})"
        )

    def order_term(self, field: str, direction: Order) -> str:
        if direction == Order.ASC:
            return f"{self.quote(field)} ASC NULLS FIRST"
        return f"{self.quote(field)} DESC NULLS LAST"

    async def _insert_returning_id(self, table: str, data: Mapping[str, Any]) -> Any:
        if not data:
            query = f"INSERT INTO {self.quote(table)} DEFAULT VALUES RETURNING {self.quote('id')}"
            values: List[Any] = []
        else:
            columns = ", ".join(self.quote(key) for key in data)
            placeholders = ", ".join(self.placeholder(position) for position in range(1, len(data) + 1))
            query = (
                f"INSERT INTO {self.quote(table)} ({columns}) "
                f"VALUES ({placeholders}) RETURNING {self.quote('id')}"
            )
            values = list(data.values())

        rows = await self._query(query, values)
        return rows[0]["id"] if rows else None
