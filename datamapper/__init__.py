"""
datamapper

Connection-agnostic models over flat JSON files, memory, MySQL and Postgres,
with automatic additive schema migration.
"""

import importlib.metadata

__version__ = importlib.metadata.version("datamapper")

from .connections import (
    Connection,
    FileConnection,
    MemoryConnection,
    MysqlConnection,
    PostgresConnection,
    connect,
    file_connection,
    memory_connection,
    mysql_connection,
    postgres_connection,
)
from .context import get_default_connection, set_default_connection
from .errors import DataMapperError, ValidationError
from .migration import MigrationHandler
from .model import Model
from .types import Field, FieldMeta, FieldType, ForeignKey, IndexSettings, Order
from .where import Comparator, WhereBuilder, WhereKind

__all__ = [
    "Comparator",
    "Connection",
    "DataMapperError",
    "Field",
    "FieldMeta",
    "FieldType",
    "FileConnection",
    "ForeignKey",
    "IndexSettings",
    "MemoryConnection",
    "MigrationHandler",
    "Model",
    "MysqlConnection",
    "Order",
    "PostgresConnection",
    "ValidationError",
    "WhereBuilder",
    "WhereKind",
    "connect",
    "file_connection",
    "get_default_connection",
    "memory_connection",
    "mysql_connection",
    "postgres_connection",
    "set_default_connection",
]
