"""
Storage backends and factories that build an initialised connection.
"""

from pathlib import Path
from typing import Any, Mapping, Optional, Union
from urllib.parse import unquote

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from ..errors import ProtocolMismatchError
from .base import Connection
from .file import FileConnection
from .memory import MemoryConnection
from .mysql import MysqlConnection
from .postgres import PostgresConnection
from .sql import SqlConnection

__all__ = [
    "Connection",
    "FileConnection",
    "MemoryConnection",
    "MysqlConnection",
    "PostgresConnection",
    "SqlConnection",
    "connect",
    "connection_from_url",
    "file_connection",
    "memory_connection",
    "mysql_connection",
    "postgres_connection",
]


async def file_connection(cache_dir: Union[str, Path], prefix: Optional[str] = None) -> FileConnection:
    connection = FileConnection(cache_dir, prefix)
    await connection.init()
    return connection


async def memory_connection(prefix: Optional[str] = None) -> MemoryConnection:
    connection = MemoryConnection(prefix)
    await connection.init()
    return connection


async def mysql_connection(
    data: Union[str, Mapping[str, Any]], prefix: Optional[str] = None
) -> MysqlConnection:
    connection = MysqlConnection(data, prefix)
    await connection.init()
    return connection


async def postgres_connection(
    data: Union[str, Mapping[str, Any]], prefix: Optional[str] = None
) -> PostgresConnection:
    connection = PostgresConnection(data, prefix)
    await connection.init()
    return connection


def connection_from_url(url: str, prefix: Optional[str] = None) -> Connection:
    """Build an unopened connection for ``url`` based on its scheme."""
    try:
        scheme = make_url(url).get_backend_name()
    except (ArgumentError, ValueError) as e:
        raise ProtocolMismatchError("memory, file, mysql or postgres", url) from e

    if scheme == "memory":
        return MemoryConnection(prefix)
    if scheme == "file":
        # file:///abs/path and file://relative/path both resolve to a directory
        path = unquote(url.split("://", 1)[1])
        return FileConnection(path, prefix)
    if scheme == "mysql":
        return MysqlConnection({"url": url}, prefix)
    if scheme in ("postgres", "postgresql"):
        return PostgresConnection({"url": url}, prefix)
    raise ProtocolMismatchError("memory, file, mysql or postgres", scheme or "<none>")


async def connect(url: str, prefix: Optional[str] = None) -> Connection:
    """Create and initialise the backend named by ``url``."""
    connection = connection_from_url(url, prefix)
    await connection.init()
    return connection
