"""
Backend-independent predicate tree ("where builder").

A tree is made of :class:`Compare` leaves and :class:`Group` composites. The
tree is pure data: comparators are only checked when a backend compiles it.

Usage:
    where = (
        WhereBuilder.new()
        .compare("status", Comparator.EQ, "open")
        .or_(lambda w: w.compare("age", Comparator.GT, 30).compare("age", Comparator.LT, 5))
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union


class WhereKind(str, Enum):
    """Node kinds of a predicate tree."""

    AND = "where/and"
    OR = "where/or"
    COMPARE = "where/compare"


class Comparator(str, Enum):
    """Comparison operators allowed on a leaf."""

    EQ = "where/eq"
    NE = "where/ne"
    LT = "where/lt"
    LTE = "where/lte"
    GT = "where/gt"
    GTE = "where/gte"


@dataclass(frozen=True)
class Compare:
    """Leaf node: ``field <comparator> value``."""

    field: str
    comparator: Any
    value: Any
    kind: WhereKind = WhereKind.COMPARE


@dataclass
class Group:
    """Composite node joining its children with AND or OR."""

    kind: WhereKind = WhereKind.AND
    children: List["Node"] = field(default_factory=list)


Node = Union[Compare, Group]


class WhereBuilder:
    """Fluent builder for a predicate tree rooted at an AND group."""

    def __init__(self, kind: WhereKind = WhereKind.AND):
        self.root = Group(kind=kind)

    @classmethod
    def new(cls) -> "WhereBuilder":
        return cls()

    def compare(self, field: str, comparator: Any, value: Any) -> "WhereBuilder":
        """Append a comparison leaf to the current scope."""
        self.root.children.append(Compare(field=field, comparator=comparator, value=value))
        return self

    def and_(self, build: Callable[["WhereBuilder"], Any]) -> "WhereBuilder":
        """Nest a new AND scope populated by ``build``."""
        return self._nest(WhereKind.AND, build)

    def or_(self, build: Callable[["WhereBuilder"], Any]) -> "WhereBuilder":
        """Nest a new OR scope populated by ``build``."""
        return self._nest(WhereKind.OR, build)

    def _nest(self, kind: WhereKind, build: Callable[["WhereBuilder"], Any]) -> "WhereBuilder":
        child = WhereBuilder(kind)
        build(child)
        self.root.children.append(child.root)
        return self

    def get_all_fields(self) -> List[str]:
        """Return every referenced field name once, in first-seen order."""
        return list(dict.fromkeys(_collect_fields(self.root)))

    def is_empty(self) -> bool:
        return not self.root.children

    def __repr__(self) -> str:
        return f"WhereBuilder({self.root!r})"


def _collect_fields(node: Node) -> List[str]:
    if isinstance(node, Compare):
        return [node.field] if node.field else []
    fields: List[str] = []
    for child in getattr(node, "children", ()):
        fields.extend(_collect_fields(child))
    return fields


EqualityMap = Mapping[str, Any]
Predicate = Union[EqualityMap, WhereBuilder]


def from_equality_map(query: EqualityMap) -> WhereBuilder:
    """Expand ``{field: value}`` sugar into an AND of EQ leaves."""
    builder = WhereBuilder()
    for key, value in query.items():
        builder.compare(key, Comparator.EQ, value)
    return builder


def resolve_predicate(predicate: Optional[Predicate]) -> WhereBuilder:
    """Normalize caller input to a :class:`WhereBuilder`."""
    if predicate is None:
        return WhereBuilder()
    if isinstance(predicate, WhereBuilder):
        return predicate
    if isinstance(predicate, Mapping):
        return from_equality_map(predicate)
    raise TypeError(
        f"Predicate must be a mapping or WhereBuilder, got {type(predicate).__name__}"
    )


def coerce_comparator(comparator: Any) -> Optional[Comparator]:
    """Return the :class:`Comparator` for ``comparator`` or None if unknown."""
    if isinstance(comparator, Comparator):
        return comparator
    try:
        return Comparator(comparator)
    except ValueError:
        return None


def is_sequence_value(value: Any) -> bool:
    """Sequence values turn EQ/NE into membership tests."""
    return isinstance(value, (list, tuple, set, frozenset))


def sequence_items(value: Any) -> Tuple[Any, ...]:
    if isinstance(value, (set, frozenset)):
        return tuple(sorted(value, key=repr))
    return tuple(value)
