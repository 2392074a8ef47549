"""Declarative condition evaluation.

Conditions are JSON-logic style operator trees: a mapping with exactly one
operator key whose value is the list of operands. Operands are literals,
lists, ``{"var": "dotted.path"}`` lookups into the evaluation data, or nested
operator trees::

    {"and": [
        {"==": [{"var": "triggerData.status"}, "Done"]},
        {">": [{"var": "triggerData.storyPoints"}, 3]},
    ]}

The evaluator is an interpreter over a closed operator set. It never executes
host code and never raises: malformed input evaluates to ``False``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Callable

__all__ = [
    "MAX_DEPTH",
    "OPERATORS",
    "InvalidCondition",
    "decode_condition",
    "evaluate",
    "is_valid_expression",
    "resolve_path",
]

logger = logging.getLogger(__name__)

MAX_DEPTH = 64
"""Deepest operator nesting accepted before a tree is treated as malformed."""

_MISSING = object()


@dataclass(frozen=True)
class InvalidCondition:
    """Marker for a stored condition that does not decode into a valid tree.

    Attributes:
        source: The raw value as it was stored.
    """

    source: Any


class _MalformedError(Exception):
    """Internal signal for a structurally invalid tree."""


def resolve_path(data: Any, path: str | int | None, default: Any = None) -> Any:
    """Look up a dotted path through nested mappings and sequences.

    Args:
        data: The root object to search.
        path: Dotted path such as ``"triggerData.assignee.id"``. ``None`` or an
            empty string return ``data`` itself.
        default: Value returned when any segment is missing.

    Returns:
        The resolved value or ``default``.
    """
    if path is None or path == "":
        return data
    current = data
    for part in str(path).split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        elif isinstance(current, Sequence) and not isinstance(current, str) and part.lstrip("-").isdigit():
            index = int(part)
            current = current[index] if -len(current) <= index < len(current) else _MISSING
        else:
            current = _MISSING
        if current is _MISSING:
            return default
    return current


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            return float(value.strip())
    except (OverflowError, ValueError):
        return None
    return None


def _ordered_pair(left: Any, right: Any) -> tuple[Any, Any] | None:
    if isinstance(left, str) and isinstance(right, str):
        left_num, right_num = _to_number(left), _to_number(right)
        if left_num is not None and right_num is not None:
            return left_num, right_num
        return left, right
    left_num, right_num = _to_number(left), _to_number(right)
    if left_num is None or right_num is None:
        return None
    return left_num, right_num


def _loose_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if left == right:
        return True
    if isinstance(left, (int, float, str)) and isinstance(right, (int, float, str)):
        left_num, right_num = _to_number(left), _to_number(right)
        return left_num is not None and left_num == right_num
    return False


def _strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if isinstance(left, str) != isinstance(right, str):
        return False
    return left == right


def _compare(check: Callable[[Any, Any], bool], *operands: Any) -> bool:
    for left, right in zip(operands, operands[1:]):
        pair = _ordered_pair(left, right)
        if pair is None:
            return False
        try:
            if not check(*pair):
                return False
        except TypeError:
            return False
    return True


def _number_text(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _contains(needle: Any, haystack: Any) -> bool:
    if isinstance(haystack, (int, float)) and not isinstance(haystack, bool):
        haystack = _number_text(haystack)
    if isinstance(haystack, str):
        if needle is None:
            return False
        if isinstance(needle, (int, float)) and not isinstance(needle, bool):
            needle = _number_text(needle)
        return str(needle) in haystack
    if isinstance(haystack, (list, tuple)):
        return any(_loose_equals(needle, item) for item in haystack)
    return False


_COMPARISONS: dict[str, Callable[..., bool]] = {
    "==": lambda a, b: _loose_equals(a, b),
    "!=": lambda a, b: not _loose_equals(a, b),
    "===": lambda a, b: _strict_equals(a, b),
    "!==": lambda a, b: not _strict_equals(a, b),
    ">": lambda *args: _compare(lambda a, b: a > b, *args),
    ">=": lambda *args: _compare(lambda a, b: a >= b, *args),
    "<": lambda *args: _compare(lambda a, b: a < b, *args),
    "<=": lambda *args: _compare(lambda a, b: a <= b, *args),
    "in": lambda a, b: _contains(a, b),
    "!": lambda a: not bool(a),
    "!!": lambda a: bool(a),
}

OPERATORS: dict[str, tuple[int, int | None]] = {
    "var": (0, 2),
    "==": (2, 2),
    "!=": (2, 2),
    "===": (2, 2),
    "!==": (2, 2),
    ">": (2, 2),
    ">=": (2, 2),
    "<": (2, 3),
    "<=": (2, 3),
    "in": (2, 2),
    "and": (1, None),
    "or": (1, None),
    "!": (1, 1),
    "!!": (1, 1),
}
"""Supported operators mapped to their ``(min, max)`` operand counts."""


def _operands(node: Mapping[str, Any]) -> tuple[str, list[Any]]:
    if len(node) != 1:
        msg = f"operator object must have exactly one key, got {len(node)}"
        raise _MalformedError(msg)
    operator, raw = next(iter(node.items()))
    if operator not in OPERATORS:
        msg = f"unknown operator {operator!r}"
        raise _MalformedError(msg)
    operands = list(raw) if isinstance(raw, (list, tuple)) else [raw]
    minimum, maximum = OPERATORS[operator]
    if len(operands) < minimum or (maximum is not None and len(operands) > maximum):
        msg = f"operator {operator!r} got {len(operands)} operands"
        raise _MalformedError(msg)
    return operator, operands


def _check(node: Any, depth: int) -> None:
    if depth > MAX_DEPTH:
        msg = "expression nested too deeply"
        raise _MalformedError(msg)
    if isinstance(node, InvalidCondition):
        msg = "condition could not be decoded"
        raise _MalformedError(msg)
    if isinstance(node, Mapping):
        _, operands = _operands(node)
        for operand in operands:
            _check(operand, depth + 1)
    elif isinstance(node, (list, tuple)):
        for item in node:
            _check(item, depth + 1)
    elif node is not None and not isinstance(node, (str, int, float, bool)):
        msg = f"unsupported literal of type {type(node).__name__}"
        raise _MalformedError(msg)


def _apply(node: Any, data: Any, depth: int) -> Any:
    if depth > MAX_DEPTH:
        msg = "expression nested too deeply"
        raise _MalformedError(msg)
    if isinstance(node, Mapping):
        operator, operands = _operands(node)
        if operator == "and":
            value: Any = True
            for operand in operands:
                value = _apply(operand, data, depth + 1)
                if not value:
                    return value
            return value
        if operator == "or":
            value = False
            for operand in operands:
                value = _apply(operand, data, depth + 1)
                if value:
                    return value
            return value
        values = [_apply(operand, data, depth + 1) for operand in operands]
        if operator == "var":
            path = values[0] if values else None
            default = values[1] if len(values) > 1 else None
            if path is not None and not isinstance(path, (str, int)):
                msg = "var path must be a string"
                raise _MalformedError(msg)
            return resolve_path(data, path, default)
        return _COMPARISONS[operator](*values)
    if isinstance(node, (list, tuple)):
        return [_apply(item, data, depth + 1) for item in node]
    if isinstance(node, InvalidCondition):
        msg = "condition could not be decoded"
        raise _MalformedError(msg)
    return node


def is_valid_expression(expr: Any) -> bool:
    """Check whether ``expr`` is a structurally valid condition.

    Legacy string conditions are valid only if they JSON-decode into a valid
    tree.

    Args:
        expr: The condition to check.

    Returns:
        True if the evaluator would accept the expression.
    """
    if isinstance(expr, str):
        return decode_condition(expr) is not None
    try:
        _check(expr, 0)
    except _MalformedError:
        return False
    return True


def decode_condition(value: Any) -> Any | None:
    """Decode a stored condition into an operator tree.

    Args:
        value: A tree, or a legacy JSON string holding a tree.

    Returns:
        The decoded tree, or ``None`` if the value is not a valid expression.
    """
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = json.loads(text)
        except (RecursionError, ValueError):
            return None
        if isinstance(value, str):
            return None
    return value if is_valid_expression(value) else None


def evaluate(expr: Any, data: Mapping[str, Any] | None = None) -> bool:
    """Evaluate a condition against evaluation data.

    Args:
        expr: An operator tree, a literal, or a legacy JSON string.
        data: The mapping ``var`` paths resolve against.

    Returns:
        The truthiness of the expression. Malformed input yields ``False``.

    Example:
        >>> evaluate({"==": [{"var": "status"}, "Done"]}, {"status": "Done"})
        True
    """
    if isinstance(expr, str):
        decoded = decode_condition(expr)
        if decoded is None:
            logger.debug("Rejecting condition string that is not a valid expression: %r", expr)
            return False
        expr = decoded
    try:
        return bool(_apply(expr, data if data is not None else {}, 0))
    except (_MalformedError, ArithmeticError, RecursionError, TypeError, ValueError) as exc:
        logger.debug("Malformed condition evaluated to false: %s", exc)
        return False
