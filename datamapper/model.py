"""
Model façade.

A Model couples a table name, its ordered field declarations and a schema
version with an optional bound connection. Every data operation validates its
input against the declared fields before any write reaches the backend, then
delegates to the resolved connection and post-processes the rows it returns.

Connection resolution order for every operation:
    1. the ``connection=`` argument of the call
    2. the connection bound at construction
    3. the process-wide default (:mod:`datamapper.context`)
"""

from __future__ import annotations

import json
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from .connections.base import Connection, Row
from .context import get_default_connection
from .errors import (
    FieldTooLongError,
    ForeignKeyViolationError,
    ModelDefinitionError,
    RequiredFieldMissingError,
    RequiredFieldNullError,
    UnknownFieldError,
    ValidationError,
)
from .types import Field, FieldMeta, FieldType, IndexSettings, Order
from .where import Predicate, resolve_predicate

logger = structlog.get_logger()

ID_FIELD = "id"

FieldInput = Union[Field, Mapping[str, Any]]
IndexInput = Union[IndexSettings, Mapping[str, Any]]


def _build_field(table: str, name: str, value: FieldInput) -> Field:
    if isinstance(value, Field):
        return value
    try:
        return Field.model_validate(value)
    except PydanticValidationError as e:
        raise ModelDefinitionError(
            f"Invalid field '{name}' on table '{table}': {e.errors()[0]['msg']} with data {value!r}"
        ) from e


def _build_index(table: str, value: IndexInput) -> IndexSettings:
    if isinstance(value, IndexSettings):
        return value
    try:
        return IndexSettings.model_validate(value)
    except PydanticValidationError as e:
        raise ModelDefinitionError(
            f"Invalid index on table '{table}': {e.errors()[0]['msg']} with data {value!r}"
        ) from e


class Model:
    """A table schema bound to a storage backend."""

    def __init__(
        self,
        table: str,
        fields: Mapping[str, Field],
        version: int = 1,
        indexes: Sequence[IndexSettings] = (),
        connection: Optional[Connection] = None,
    ):
        self.table = table
        self.fields: Mapping[str, Field] = MappingProxyType(dict(fields))
        self.version = version
        self.indexes = tuple(indexes)
        self.connection = connection

    @classmethod
    def create(
        cls,
        table: str,
        fields: Mapping[str, FieldInput],
        version: int = 1,
        indexes: Optional[Iterable[IndexInput]] = None,
        connection: Optional[Connection] = None,
    ) -> "Model":
        """
        Validate a model definition and build the Model.

        An ``id: INT {AUTO}`` field is injected first unless ``id`` is declared.

        Raises:
            ModelDefinitionError: If any part of the definition is invalid
        """
        if not isinstance(table, str) or not table:
            raise ModelDefinitionError(f"Model table must be a non-empty string, got {table!r}")
        if not isinstance(fields, Mapping):
            raise ModelDefinitionError(f"Model '{table}' fields must be a mapping, got {fields!r}")
        if isinstance(version, bool) or not isinstance(version, int):
            raise ModelDefinitionError(f"Model '{table}' version must be an integer, got {version!r}")

        built: Dict[str, Field] = {}
        if ID_FIELD not in fields:
            built[ID_FIELD] = Field(type=FieldType.INT, meta=frozenset({FieldMeta.AUTO}))
        for name, value in fields.items():
            built[name] = _build_field(table, name, value)

        auto_fields = [name for name, field in built.items() if field.is_auto]
        if len(auto_fields) > 1:
            raise ModelDefinitionError(
                f"Model '{table}' declares more than one AUTO field: {auto_fields}"
            )
        if auto_fields and auto_fields[0] != ID_FIELD:
            raise ModelDefinitionError(
                f"Model '{table}' AUTO field must be '{ID_FIELD}', got '{auto_fields[0]}'"
            )

        built_indexes = [_build_index(table, index) for index in indexes or ()]
        return cls(table, built, version, built_indexes, connection)

    def __repr__(self) -> str:
        return f"Model(table={self.table!r}, version={self.version})"

    # -- helpers -----------------------------------------------------------

    def get_table(self) -> str:
        return self.table

    def get_field(self, name: str) -> Optional[Field]:
        return self.fields.get(name)

    def get_connection(self, connection: Optional[Connection] = None) -> Connection:
        """Resolve the connection for one operation."""
        if connection is not None:
            return connection
        if self.connection is not None:
            return self.connection
        return get_default_connection()

    def _check_known(self, names: Iterable[str]) -> None:
        for name in names:
            if name not in self.fields:
                raise UnknownFieldError(name, self.table)

    def coerce_id(self, id: Any) -> Any:
        field = self.fields.get(ID_FIELD)
        if field is None or field.type not in (FieldType.INT, FieldType.BIGINT):
            return id
        if isinstance(id, str):
            stripped = id.strip()
            if stripped.lstrip("-").isdigit():
                return int(stripped)
        return id

    def _check_order(self, order: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Order]]:
        if not order:
            return None
        self._check_known(order)
        checked: Dict[str, Order] = {}
        for name, direction in order.items():
            try:
                checked[name] = Order(direction)
            except ValueError as e:
                raise ValidationError(f"Unknown order direction {direction!r} for field '{name}'") from e
        return checked

    def _check_sizes(self, data: Mapping[str, Any]) -> None:
        for name, value in data.items():
            field = self.fields[name]
            if field.size is not None and isinstance(value, str) and len(value) > field.size:
                raise FieldTooLongError(name, len(value), field.size)

    async def _check_foreign_keys(self, data: Mapping[str, Any], connection: Connection) -> None:
        for name, value in data.items():
            foreign = self.fields[name].foreign
            if foreign is None or value is None:
                continue
            referenced = foreign.table
            found = await referenced.count(
                {foreign.field: value},
                connection=referenced.connection or connection,
            )
            if found == 0:
                raise ForeignKeyViolationError(name, value)

    def process_for_save(self, name: str, value: Any) -> Any:
        if value is not None and self.fields[name].type == FieldType.JSON:
            return json.dumps(value)
        return value

    def process_result(self, row: Mapping[str, Any]) -> Row:
        """Shape a raw backend row to the declared field set."""
        result: Row = {}
        for name, field in self.fields.items():
            value = row.get(name)
            if field.type == FieldType.JSON:
                if isinstance(value, (str, bytes)):
                    value = json.loads(value)
            elif field.type == FieldType.BOOLEAN:
                value = bool(value)
            result[name] = value
        return result

    # -- lifecycle ---------------------------------------------------------

    async def init(self, connection: Optional[Connection] = None) -> None:
        """Create or reconcile the backing table."""
        conn = self.get_connection(connection)
        await conn.initialize_table(self.table, self.fields, self.version, self.indexes)
        logger.debug("model_initialized", table=self.table, version=self.version)

    # -- data operations ---------------------------------------------------

    async def insert(self, data: Mapping[str, Any], connection: Optional[Connection] = None) -> Any:
        """
        Insert a row and return its id.

        Raises:
            UnknownFieldError: If ``data`` names an undeclared field
            RequiredFieldMissingError: If a REQUIRED field is absent
            RequiredFieldNullError: If a REQUIRED field is None
            FieldTooLongError: If a sized STRING value is too long
            ForeignKeyViolationError: If a foreign value does not exist
        """
        conn = self.get_connection(connection)
        data = dict(data)
        self._check_known(data)

        for name, field in self.fields.items():
            if not field.is_required or field.is_auto:
                continue
            if name not in data:
                raise RequiredFieldMissingError(name)
            if data[name] is None:
                raise RequiredFieldNullError(name)

        self._check_sizes(data)
        await self._check_foreign_keys(data, conn)

        record = {
            name: self.process_for_save(name, value)
            for name, value in data.items()
            if not (value is None and self.fields[name].is_auto)
        }
        return await conn.insert(self.table, self.fields, record)

    async def update(
        self, id: Any, data: Mapping[str, Any], connection: Optional[Connection] = None
    ) -> Any:
        """Update the supplied fields of row ``id`` and return the id."""
        conn = self.get_connection(connection)
        data = dict(data)
        self._check_known(data)

        for name, value in data.items():
            if value is None and self.fields[name].is_required:
                raise RequiredFieldNullError(name)

        self._check_sizes(data)
        await self._check_foreign_keys(data, conn)

        record = {name: self.process_for_save(name, value) for name, value in data.items()}
        return await conn.update(self.table, self.coerce_id(id), record, self.fields)

    async def get(self, id: Any, connection: Optional[Connection] = None) -> Optional[Row]:
        rows = await self.search({ID_FIELD: self.coerce_id(id)}, limit=1, connection=connection)
        return rows[0] if rows else None

    async def search(
        self,
        predicate: Optional[Predicate] = None,
        order: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        connection: Optional[Connection] = None,
    ) -> List[Row]:
        """
        Return rows matching ``predicate``.

        Args:
            predicate: Equality mapping or WhereBuilder; None matches everything
            order: Mapping field -> Order, first entry sorts first
            limit: Maximum number of rows
            offset: Rows to skip after filtering and sorting
        """
        conn = self.get_connection(connection)
        where = resolve_predicate(predicate)
        self._check_known(where.get_all_fields())
        checked_order = self._check_order(order)

        rows = await conn.search(self.table, where, checked_order, limit, offset)
        return [self.process_result(row) for row in rows]

    async def count(
        self, predicate: Optional[Predicate] = None, connection: Optional[Connection] = None
    ) -> int:
        conn = self.get_connection(connection)
        where = resolve_predicate(predicate)
        self._check_known(where.get_all_fields())
        return await conn.count(self.table, where)

    async def delete(self, id: Any, connection: Optional[Connection] = None) -> None:
        conn = self.get_connection(connection)
        await conn.delete(self.table, self.coerce_id(id))

    def filter_for_export(self, data: Union[Row, List[Row]]) -> Union[Row, List[Row]]:
        """Strip FILTERED fields from a row or a list of rows."""
        if isinstance(data, list):
            return [self.filter_for_export(item) for item in data]
        filtered = {name for name, field in self.fields.items() if field.is_filtered}
        return {key: value for key, value in data.items() if key not in filtered}
