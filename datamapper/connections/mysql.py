"""
MySQL backend on top of aiomysql.

aiomysql binds with DB-API ``format`` placeholders, so every bound value is
written as ``%s`` regardless of its position.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy.engine import make_url

from ..errors import ProtocolMismatchError, SqlSyntaxError, UnsupportedQueryError
from ..types import Field, FieldType, IndexSettings
from .base import Fields, Row
from .sql import (
    BASE_COLUMN_TYPES,
    BindState,
    SqlConnection,
    SqlWhereCompiler,
    check_bind_values,
    string_column_type,
)

# CR_SERVER_GONE_ERROR, CR_SERVER_LOST, CR_SERVER_LOST_EXTENDED
DEAD_CONNECTION_CODES = {2006, 2013, 2055}
ER_PARSE_ERROR = 1064

MysqlParams = Dict[str, Any]


class MysqlWhereCompiler(SqlWhereCompiler):
    quote_char = "`"

    def placeholder(self, position: int) -> str:
        return "%s"


def parse_mysql_params(data: Union[str, Mapping[str, Any]]) -> MysqlParams:
    """Normalize ``{"url": ...}`` or a URL string into aiomysql keyword args."""
    if isinstance(data, str):
        data = {"url": data}
    if "url" not in data:
        params = {
            "host": data.get("host", "localhost"),
            "user": data.get("user") or data.get("username"),
            "password": data.get("password") or "",
            "db": data.get("database") or data.get("db"),
        }
        if data.get("port"):
            params["port"] = int(data["port"])
        return params

    url = make_url(data["url"])
    backend = url.get_backend_name()
    if backend != "mysql":
        raise ProtocolMismatchError("mysql", backend)

    params = {
        "host": url.host or "localhost",
        "user": url.username,
        "password": url.password or "",
        "db": url.database,
    }
    if url.port:
        params["port"] = url.port
    return params


class MysqlConnection(SqlConnection):
    """Backend issuing MySQL dialect SQL through aiomysql."""

    scheme = "mysql"
    compiler = MysqlWhereCompiler()

    def __init__(self, data: Union[str, Mapping[str, Any]], prefix: Optional[str] = None):
        super().__init__(prefix)
        self.params = parse_mysql_params(data)

    async def create_connection(self) -> Any:
        import aiomysql

        return await aiomysql.connect(
            autocommit=True,
            cursorclass=aiomysql.DictCursor,
            **self.params,
        )

    async def close(self) -> None:
        connection = self.connection
        self.connection = None
        if connection is not None:
            connection.close()

    async def _execute(self, query: str, values: Optional[Sequence[Any]] = None) -> Tuple[List[Row], Any]:
        import aiomysql

        check_bind_values(query, values)
        connection = await self.get_connection()
        try:
            async with connection.cursor() as cursor:
                await cursor.execute(query, list(values) if values else None)
                rows = await cursor.fetchall()
                return [dict(row) for row in rows or ()], cursor.lastrowid
        except aiomysql.OperationalError as e:
            if e.args and e.args[0] in DEAD_CONNECTION_CODES:
                self.logger.warning("connection_lost", error=str(e))
                await self.close()
            raise
        except aiomysql.ProgrammingError as e:
            if e.args and e.args[0] == ER_PARSE_ERROR:
                raise SqlSyntaxError(query, str(e.args[-1])) from e
            raise

    async def _query(self, query: str, values: Optional[Sequence[Any]] = None) -> List[Row]:
        rows, _ = await self._execute(query, values)
        return rows

    def column_type(self, field: Field) -> str:
        if field.type == FieldType.STRING:
            return string_column_type(field)
        return BASE_COLUMN_TYPES[field.type]

    def column_definition(self, name: str, field: Field) -> str:
        definition = f"{self.quote(name)} {self.column_type(field)}"
        if field.is_required or field.is_auto:
            definition += " NOT NULL"
        if field.is_auto:
            definition += " AUTO_INCREMENT"
        return definition

    def create_table_sql(self, table: str, fields: Fields) -> str:
        parts = [self.column_definition(name, field) for name, field in fields.items()]
        for name, field in fields.items():
            if field.is_auto:
                parts.append(f"PRIMARY KEY ({self.quote(name)})")
        for name, field in fields.items():
            if field.foreign is not None:
                constraint = self.foreign_key_constraint_name(table, name)
                parts.append(f"CONSTRAINT {self.quote(constraint)} {self.foreign_key_sql(name, field)}")
        return f"CREATE TABLE {self.quote(table)} ({', '.join(parts)})"

    async def _live_columns(self, table: str) -> List[str]:
        rows = await self._query(f"DESCRIBE {self.quote(table)}")
        return [row["Field"] for row in rows]

    async def _ensure_index(self, table: str, name: str, index: IndexSettings) -> None:
        rows = await self._query(
            "SELECT COUNT(*) AS `count` FROM information_schema.statistics "
            "WHERE table_schema = DATABASE() AND table_name = %s AND index_name = %s",
            [table, name],
        )
        if rows and int(rows[0]["count"]) > 0:
            return

        columns = ", ".join(self.quote(field) for field in index.fields)
        unique = "UNIQUE " if index.unique else ""
        await self._query(f"CREATE {unique}INDEX {self.quote(name)} ON {self.quote(table)} ({columns})")
        self.logger.info("index_created", table=table, index=name)

    def limit_clause(self, limit: Optional[int], offset: Optional[int], state: BindState) -> str:
        if offset and limit is None:
            raise UnsupportedQueryError("MySQL does not support OFFSET without LIMIT")
        return super().limit_clause(limit, offset, state)

    async def _insert_returning_id(self, table: str, data: Mapping[str, Any]) -> Any:
        if not data:
            query = f"INSERT INTO {self.quote(table)} () VALUES ()"
            values: List[Any] = []
        else:
            columns = ", ".join(self.quote(key) for key in data)
            placeholders = ", ".join("%s" for _ in data)
            query = f"INSERT INTO {self.quote(table)} ({columns}) VALUES ({placeholders})"
            values = list(data.values())

        _, last_id = await self._execute(query, values)
        return last_id
