"""
Field types, field metadata and index settings shared by models and backends.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField, conint, model_validator


class FieldType(str, Enum):
    """Storage type of a model field."""

    INT = "type/int"
    STRING = "type/string"
    BIGINT = "type/big_int"
    JSON = "type/json"
    BOOLEAN = "type/boolean"


class FieldMeta(str, Enum):
    """Metadata flags attached to a field."""

    AUTO = "meta/auto"
    REQUIRED = "meta/required"
    FILTERED = "meta/filtered"


class Order(str, Enum):
    """Sort direction for search results."""

    ASC = "order/asc"
    DESC = "order/desc"


class ForeignKey(BaseModel):
    """Reference from a field to a field of another model.

    ``table`` is the referenced :class:`datamapper.model.Model`; it is typed
    loosely because models import this module.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    table: Any
    field: str = "id"

    @model_validator(mode="after")
    def check_table(self) -> "ForeignKey":
        if not hasattr(self.table, "get_table") or not hasattr(self.table, "count"):
            raise ValueError("foreign.table must be a Model")
        return self


class Field(BaseModel):
    """Declaration of a single model field."""

    model_config = ConfigDict(frozen=True)

    type: FieldType
    meta: FrozenSet[FieldMeta] = frozenset()
    size: Optional[conint(gt=0)] = None
    foreign: Optional[ForeignKey] = None

    @model_validator(mode="after")
    def check_size(self) -> "Field":
        if self.size is not None and self.type != FieldType.STRING:
            raise ValueError("size is only supported on STRING fields")
        return self

    @property
    def is_auto(self) -> bool:
        return FieldMeta.AUTO in self.meta

    @property
    def is_required(self) -> bool:
        return FieldMeta.REQUIRED in self.meta

    @property
    def is_filtered(self) -> bool:
        return FieldMeta.FILTERED in self.meta


class IndexSettings(BaseModel):
    """Declared index over one or more fields."""

    model_config = ConfigDict(frozen=True)

    fields: List[str] = PydanticField(min_length=1)
    unique: bool = False
    name: Optional[str] = None


def auto_field_name(fields: Dict[str, Field]) -> Optional[str]:
    """Return the name of the AUTO field in ``fields``, if any."""
    for name, field in fields.items():
        if field.is_auto:
            return name
    return None
