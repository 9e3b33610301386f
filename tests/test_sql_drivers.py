"""
Tests for driver error handling in the SQL backends.

The driver handles are in-process fakes that either return canned rows or
raise a configured driver exception.
"""

from typing import Any, Dict, List, Optional

import aiomysql
import asyncpg
import pytest

from datamapper.connections.mysql import MysqlConnection
from datamapper.connections.postgres import PostgresConnection
from datamapper.errors import SqlSyntaxError
from datamapper.where import WhereBuilder


class FakeCursor:
    def __init__(self, handle: "FakeMysqlHandle"):
        self.handle = handle
        self.lastrowid = None

    async def __aenter__(self) -> "FakeCursor":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def execute(self, query: str, values: Optional[List[Any]] = None) -> None:
        self.handle.queries.append(query)
        if self.handle.error is not None:
            raise self.handle.error

    async def fetchall(self) -> List[Dict[str, Any]]:
        return self.handle.rows


class FakeMysqlHandle:
    def __init__(self, rows: List[Dict[str, Any]], error: Optional[Exception]):
        self.rows = rows
        self.error = error
        self.queries: List[str] = []
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def close(self) -> None:
        self.closed = True


class FakePostgresHandle:
    def __init__(self, rows: List[Dict[str, Any]], error: Optional[Exception]):
        self.rows = rows
        self.error = error
        self.closed = False

    async def fetch(self, query: str, *values: Any) -> List[Dict[str, Any]]:
        if self.error is not None:
            raise self.error
        return self.rows

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True


class FakeDriver:
    """Hands out a new fake handle for every connect."""

    handle_class: Any = None

    def setup_driver(self) -> None:
        self.handles: List[Any] = []
        self.rows: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    async def create_connection(self) -> Any:
        handle = self.handle_class(self.rows, self.error)
        self.handles.append(handle)
        return handle


class FakeMysql(FakeDriver, MysqlConnection):
    handle_class = FakeMysqlHandle

    def __init__(self):
        MysqlConnection.__init__(self, "mysql://user:pw@localhost/db")
        self.setup_driver()


class FakePostgres(FakeDriver, PostgresConnection):
    handle_class = FakePostgresHandle

    def __init__(self):
        PostgresConnection.__init__(self, "postgresql://user:pw@localhost/db")
        self.setup_driver()


class TestMysqlDriverErrors:
    """Tests for aiomysql error mapping."""

    @pytest.mark.asyncio
    async def test_lost_connection_is_cleared_then_reopened(self):
        conn = FakeMysql()
        conn.error = aiomysql.OperationalError(2006, "MySQL server has gone away")

        with pytest.raises(aiomysql.OperationalError):
            await conn.count("foo", WhereBuilder.new())
        assert conn.connection is None
        assert conn.handles[0].closed

        conn.error = None
        conn.rows = [{"count": 3}]
        assert await conn.count("foo", WhereBuilder.new()) == 3
        assert len(conn.handles) == 2
        assert conn.connection is conn.handles[1]

    @pytest.mark.asyncio
    async def test_other_operational_errors_keep_the_connection(self):
        conn = FakeMysql()
        conn.error = aiomysql.OperationalError(1045, "Access denied")

        with pytest.raises(aiomysql.OperationalError):
            await conn.search("foo", WhereBuilder.new())
        assert conn.connection is conn.handles[0]
        assert not conn.handles[0].closed

    @pytest.mark.asyncio
    async def test_syntax_error_is_reworded(self):
        conn = FakeMysql()
        conn.error = aiomysql.ProgrammingError(1064, "You have an error in your SQL syntax")

        with pytest.raises(SqlSyntaxError) as exc_info:
            await conn.search("foo", WhereBuilder.new())
        assert exc_info.value.code == "SQL_SYNTAX"
        assert exc_info.value.query == conn.handles[0].queries[0]
        assert "You have an error in your SQL syntax" in exc_info.value.message
        assert conn.connection is conn.handles[0]


class TestPostgresDriverErrors:
    """Tests for asyncpg error mapping."""

    @pytest.mark.asyncio
    async def test_lost_connection_is_cleared_then_reopened(self):
        conn = FakePostgres()
        conn.error = asyncpg.ConnectionDoesNotExistError("connection was closed in the middle of operation")

        with pytest.raises(asyncpg.ConnectionDoesNotExistError):
            await conn.search("foo", WhereBuilder.new())
        assert conn.connection is None
        assert conn.handles[0].closed

        conn.error = None
        conn.rows = [{"id": 1}]
        assert await conn.search("foo", WhereBuilder.new()) == [{"id": 1}]
        assert len(conn.handles) == 2

    @pytest.mark.asyncio
    async def test_syntax_error_is_reworded(self):
        conn = FakePostgres()
        conn.error = asyncpg.PostgresSyntaxError('syntax error at or near "FORM"')

        with pytest.raises(SqlSyntaxError) as exc_info:
            await conn.search("foo", WhereBuilder.new())
        assert exc_info.value.query.startswith('SELECT * FROM "foo"')
        assert 'syntax error at or near "FORM"' in exc_info.value.message

    @pytest.mark.asyncio
    async def test_get_connection_is_lazy_and_reused(self):
        conn = FakePostgres()
        assert conn.connection is None

        first = await conn.get_connection()
        assert await conn.get_connection() is first
        assert conn.handles == [first]
