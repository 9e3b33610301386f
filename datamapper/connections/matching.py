"""
In-process predicate evaluation for the file and memory backends.

The comparison rules mirror what the SQL compilers generate so that a query
returns the same rows on every backend:

- EQ with a sequence value is a membership test
- EQ with ``None`` matches a null or missing row value
- EQ with ``False`` matches ``False``, ``0``, null or missing
- other EQ comparisons use typed loose equality: numbers compare
  numerically and a numeric string equals the number it spells
- ordering comparisons never match a null operand
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..errors import UnknownComparatorError, UnknownPredicateKindError
from ..types import Order
from ..where import (
    Comparator,
    Compare,
    Group,
    Node,
    WhereKind,
    coerce_comparator,
    is_sequence_value,
    sequence_items,
)

_MISSING = object()

# Ranks used to totally order values of unrelated types.
_RANK_NULL = 0
_RANK_NUMBER = 1
_RANK_STRING = 2
_RANK_OTHER = 3


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _is_nan(value: Any) -> bool:
    return isinstance(value, (float, Decimal)) and value != value


def _is_null(value: Any) -> bool:
    """Values that never satisfy an ordering comparison; NaN behaves as NULL."""
    return value is None or value is _MISSING or _is_nan(value)


def _as_number(value: Any) -> Optional[Decimal]:
    """Return ``value`` as a Decimal if it is a number or a numeric string."""
    if isinstance(value, bool):
        return Decimal(int(value))
    if _is_nan(value):
        return None
    if _is_number(value):
        return Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    if isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def loosely_equal(expected: Any, actual: Any) -> bool:
    """Equality used by EQ leaves on scalar values."""
    if expected is None or actual is None:
        return expected is None and actual is None
    if isinstance(expected, str) and isinstance(actual, str):
        return expected == actual
    if _is_number(expected) or _is_number(actual) or isinstance(expected, bool) or isinstance(actual, bool):
        left = _as_number(expected)
        right = _as_number(actual)
        if left is not None and right is not None:
            return left == right
        return False
    return expected == actual


def is_falsy_value(value: Any) -> bool:
    """Row values treated as equal to ``False``."""
    return value is None or value is False or (_is_number(value) and value == 0)


def values_equal(expected: Any, actual: Any) -> bool:
    """Evaluate an EQ leaf whose builder value is ``expected``."""
    if actual is _MISSING:
        actual = None
    if is_sequence_value(expected):
        return any(loosely_equal(item, actual) for item in sequence_items(expected))
    if expected is False:
        return is_falsy_value(actual)
    return loosely_equal(expected, actual)


def ordering_key(value: Any) -> Tuple[int, Any]:
    """Sort key giving every value a place in one total order."""
    if _is_null(value):
        return (_RANK_NULL, 0)
    if isinstance(value, bool) or _is_number(value):
        return (_RANK_NUMBER, _as_number(value))
    if isinstance(value, str):
        return (_RANK_STRING, value)
    return (_RANK_OTHER, repr(value))


def compare_order(left: Any, right: Any) -> Optional[int]:
    """Three-way comparison for LT/LTE/GT/GTE, or None when a side is null."""
    if _is_null(left) or _is_null(right):
        return None
    left_number = _as_number(left)
    right_number = _as_number(right)
    if left_number is not None and right_number is not None:
        a, b = left_number, right_number
    else:
        a, b = ordering_key(left), ordering_key(right)
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def _match_compare(node: Compare, row: Mapping[str, Any]) -> bool:
    comparator = coerce_comparator(node.comparator)
    if comparator is None:
        raise UnknownComparatorError(node.comparator)
    if not node.field:
        return False

    actual = row.get(node.field, _MISSING)
    if comparator == Comparator.EQ:
        return values_equal(node.value, actual)
    if comparator == Comparator.NE:
        return not values_equal(node.value, actual)

    result = compare_order(actual, node.value)
    if result is None:
        return False
    if comparator == Comparator.LT:
        return result < 0
    if comparator == Comparator.LTE:
        return result <= 0
    if comparator == Comparator.GT:
        return result > 0
    return result >= 0


def matches(node: Node, row: Mapping[str, Any]) -> bool:
    """Return True when ``row`` satisfies the predicate rooted at ``node``."""
    kind = getattr(node, "kind", None)
    if kind == WhereKind.COMPARE and isinstance(node, Compare):
        return _match_compare(node, row)
    if kind == WhereKind.AND and isinstance(node, Group):
        for child in node.children:
            if not matches(child, row):
                return False
        return True
    if kind == WhereKind.OR and isinstance(node, Group):
        for child in node.children:
            if matches(child, row):
                return True
        # an OR without a passing child, including an empty one, matches nothing
        return False
    raise UnknownPredicateKindError(kind)


def validate_tree(node: Node) -> None:
    """Raise on unknown comparators or node kinds without touching any row."""
    kind = getattr(node, "kind", None)
    if kind == WhereKind.COMPARE and isinstance(node, Compare):
        if coerce_comparator(node.comparator) is None:
            raise UnknownComparatorError(node.comparator)
        return
    if kind in (WhereKind.AND, WhereKind.OR) and isinstance(node, Group):
        for child in node.children:
            validate_tree(child)
        return
    raise UnknownPredicateKindError(kind)


def sort_rows(rows: List[Dict[str, Any]], order: Mapping[str, Order]) -> List[Dict[str, Any]]:
    """Stable multi-key sort; the first field in ``order`` has highest priority."""
    result = list(rows)
    for field, direction in reversed(list(order.items())):
        result.sort(
            key=lambda row: ordering_key(row.get(field)),
            reverse=Order(direction) == Order.DESC,
        )
    return result


def apply_window(
    rows: List[Dict[str, Any]], limit: Optional[int], offset: Optional[int]
) -> List[Dict[str, Any]]:
    """Skip ``offset`` leading rows then cap at ``limit``."""
    start = offset or 0
    if limit is None:
        return rows[start:]
    return rows[start : start + limit]
