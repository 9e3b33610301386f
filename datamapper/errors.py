"""
Error taxonomy for datamapper.

Every error carries a stable ``code`` for programmatic handling. Errors that
describe bad caller input derive from :class:`ValidationError` and are always
raised before any backend I/O happens.
"""

from typing import Any, Dict, Optional


class DataMapperError(Exception):
    """
    Base class for all datamapper errors.

    Attributes:
        code: Stable error code for programmatic handling
        message: Human-readable error description
    """

    code = "DATAMAPPER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "error": self.code,
            "message": self.message,
        }


class ValidationError(DataMapperError):
    """Caller input was rejected before reaching a backend."""

    code = "VALIDATION_ERROR"


class NoDefaultConnectionError(DataMapperError):
    code = "NO_DEFAULT_CONNECTION"

    def __init__(self) -> None:
        super().__init__("No default connection set")


class ModelDefinitionError(ValidationError):
    code = "INVALID_MODEL"


class UnknownFieldError(ValidationError):
    code = "UNKNOWN_FIELD"

    def __init__(self, field: str, table: Optional[str] = None):
        self.field = field
        self.table = table
        message = f"No such field '{field}'"
        if table:
            message += f" on table '{table}'"
        super().__init__(message)


class RequiredFieldMissingError(ValidationError):
    code = "REQUIRED_FIELD_MISSING"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Required field '{field}' not found")


class RequiredFieldNullError(ValidationError):
    code = "REQUIRED_FIELD_NULL"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Field '{field}' cannot be set to null")


class FieldTooLongError(ValidationError):
    code = "FIELD_TOO_LONG"

    def __init__(self, field: str, length: int, size: int):
        self.field = field
        self.length = length
        self.size = size
        super().__init__(
            f"Field '{field}' received data of size {length}, "
            f"but expected data of at most length {size}"
        )


class ForeignKeyViolationError(ValidationError):
    code = "FOREIGN_KEY_VIOLATION"

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(
            f"Failing foreign key constraint on field '{field}': "
            f"value '{value}' does not exist in foreign table"
        )


class UniqueConstraintError(ValidationError):
    code = "UNIQUE_VIOLATION"

    def __init__(self, index: str, values: Any):
        self.index = index
        self.values = values
        super().__init__(f"Duplicate value {values!r} for unique index '{index}'")


class UnknownComparatorError(ValidationError):
    code = "UNKNOWN_COMPARATOR"

    def __init__(self, comparator: Any):
        self.comparator = comparator
        super().__init__(f"Unknown WhereBuilder compare type {comparator!r}")


class UnknownPredicateKindError(ValidationError):
    code = "UNKNOWN_PREDICATE_KIND"

    def __init__(self, kind: Any):
        self.kind = kind
        super().__init__(f"Unknown WhereBuilder type {kind!r}")


class FieldNotFoundForIndexError(ValidationError):
    code = "INDEX_FIELD_NOT_FOUND"

    def __init__(self, field: str, index: str):
        self.field = field
        self.index = index
        super().__init__(f"Index '{index}' references unknown field '{field}'")


class UnsupportedQueryError(ValidationError):
    code = "UNSUPPORTED_QUERY"


class ProtocolMismatchError(DataMapperError):
    code = "PROTOCOL_MISMATCH"

    def __init__(self, expected: str, got: str):
        self.expected = expected
        self.got = got
        super().__init__(
            f"DB connection url protocol must be {expected}, got {got}"
        )


class UndefinedBindValueError(ValidationError):
    code = "UNDEFINED_BIND_VALUE"

    def __init__(self, query: str, values: Any):
        self.query = query
        self.values = values
        super().__init__(
            f"Got unbindable value for query {query} with bind of {values!r}"
        )


class TableNotInitializedError(DataMapperError):
    code = "TABLE_NOT_INITIALIZED"

    def __init__(self, table: str):
        self.table = table
        super().__init__(f"Model {table} has not been initialized")


class SqlSyntaxError(DataMapperError):
    """A driver syntax error, reworded to include the offending query."""

    code = "SQL_SYNTAX"

    def __init__(self, query: str, detail: str):
        self.query = query
        self.detail = detail
        super().__init__(f"Syntax error for query {query}: {detail}")
