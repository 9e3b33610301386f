"""Test configuration and fixtures."""

import pytest
import pytest_asyncio

from datamapper.connections import FileConnection, MemoryConnection
from datamapper.context import set_default_connection
from datamapper.log import set_log
from datamapper.migration import MigrationHandler


@pytest.fixture(autouse=True, scope="session")
def quiet_logs():
    """Silence library logging for the whole run."""
    set_log(False)
    yield
    set_log(True)


@pytest.fixture(autouse=True)
def reset_globals():
    """Clear the default connection and migration registry after each test."""
    yield
    set_default_connection(None)
    MigrationHandler.reset_migrations()


@pytest_asyncio.fixture(params=["memory", "file"])
async def connection(request, tmp_path):
    """An initialised in-process backend, also installed as the default."""
    if request.param == "memory":
        conn = MemoryConnection()
    else:
        conn = FileConnection(tmp_path / "db")
    await conn.init()
    set_default_connection(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def memory():
    """A memory backend that is not installed as the default."""
    conn = MemoryConnection()
    await conn.init()
    yield conn
    await conn.close()
