"""Trigger and condition evaluation for automation rules.

Field comparisons are compiled into condition trees and run through the
shared condition evaluator. Trigger evaluators are registered per
``TriggerType``; the registry is checked for exhaustiveness at import time.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from litestar_automation.core.conditions import evaluate, resolve_path
from litestar_automation.core.context import utcnow
from litestar_automation.core.types import ConditionOperator, LogicalOperator, TriggerType

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

__all__ = [
    "TIME_TOLERANCE_SECONDS",
    "TRIGGER_EVALUATORS",
    "TriggerEvaluator",
    "compile_comparison",
    "conditions_met",
    "evaluate_condition",
    "evaluate_trigger",
    "parse_moment",
]

logger = logging.getLogger(__name__)

TIME_TOLERANCE_SECONDS = 60
"""How far a time-based ``equals`` trigger may be from now and still match."""

TriggerEvaluator = Callable[["Mapping[str, Any]", "Mapping[str, Any]"], bool]

_COMPARISON_TREES: dict[ConditionOperator, Callable[[dict[str, Any], Any], dict[str, Any]]] = {
    ConditionOperator.EQUALS: lambda operand, value: {"===": [operand, value]},
    ConditionOperator.NOT_EQUALS: lambda operand, value: {"!==": [operand, value]},
    ConditionOperator.CONTAINS: lambda operand, value: {"in": [value, operand]},
    ConditionOperator.GREATER_THAN: lambda operand, value: {">": [operand, value]},
    ConditionOperator.LESS_THAN: lambda operand, value: {"<": [operand, value]},
    ConditionOperator.IS_EMPTY: lambda operand, value: {"!": [operand]},
    ConditionOperator.IS_NOT_EMPTY: lambda operand, value: {"!!": [operand]},
}


def compile_comparison(field: str, operator: ConditionOperator | str, value: Any = None) -> dict[str, Any]:
    """Express a field comparison as a condition tree.

    Args:
        field: Dotted path into the evaluation context.
        operator: The comparison operator.
        value: The configured operand.

    Returns:
        The equivalent condition tree.

    Raises:
        ValueError: If the operator is unknown.

    Example:
        >>> compile_comparison("issue.priority", "equals", "high")
        {'===': [{'var': 'issue.priority'}, 'high']}
    """
    return _COMPARISON_TREES[ConditionOperator(operator)]({"var": field}, value)


def evaluate_condition(condition: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    """Evaluate a single rule condition. Unknown operators do not match."""
    try:
        tree = compile_comparison(condition.get("field") or "", condition.get("operator") or "", condition.get("value"))
    except ValueError:
        logger.debug("Unknown condition operator %r", condition.get("operator"))
        return False
    return evaluate(tree, context)


def conditions_met(conditions: Sequence[Mapping[str, Any]], context: Mapping[str, Any]) -> bool:
    """Fold rule conditions strictly left to right.

    The first condition's result is the starting value. Each subsequent
    condition is combined with it using the preceding condition's own
    ``logicalOperator`` (AND when unset). There is no grouping or
    precedence: ``[A AND, B OR, C]`` means ``(A and B) or C``.

    Returns:
        True for an empty condition list.
    """
    if not conditions:
        return True
    result = evaluate_condition(conditions[0], context)
    for previous, condition in zip(conditions, conditions[1:]):
        matched = evaluate_condition(condition, context)
        if str(previous.get("logicalOperator") or LogicalOperator.AND).upper() == LogicalOperator.OR:
            result = result or matched
        else:
            result = result and matched
    return result


def parse_moment(value: Any) -> datetime | None:
    """Interpret a context value as an aware datetime.

    Accepts datetimes, ISO 8601 strings and epoch milliseconds. Naive values
    are taken as UTC.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            moment = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def _field_change(config: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    operator = config.get("operator") or ConditionOperator.EQUALS
    if operator in (ConditionOperator.IS_EMPTY, ConditionOperator.IS_NOT_EMPTY):
        return False
    condition = {"field": config.get("field"), "operator": operator, "value": config.get("value")}
    return evaluate_condition(condition, context)


def _time_based(config: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    moment = parse_moment(resolve_path(context, config.get("field") or ""))
    if moment is None:
        return False
    now = utcnow()
    operator = config.get("operator")
    if operator == ConditionOperator.EQUALS:
        return abs((moment - now).total_seconds()) < TIME_TOLERANCE_SECONDS
    if operator == ConditionOperator.GREATER_THAN:
        return moment > now
    if operator == ConditionOperator.LESS_THAN:
        return moment < now
    return False


def _event_type(context: Mapping[str, Any]) -> Any:
    return context.get("eventType", context.get("triggerEvent"))


def _user_action(config: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    return config.get("eventType") is not None and _event_type(context) == config.get("eventType")


def _external_event(config: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    return (
        config.get("webhookUrl") is not None
        and context.get("webhookUrl") == config.get("webhookUrl")
        and _event_type(context) == config.get("eventType")
    )


def _scheduled(config: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    # gating happens in the scheduled rule scanner
    return True


TRIGGER_EVALUATORS: dict[TriggerType, TriggerEvaluator] = {
    TriggerType.FIELD_CHANGE: _field_change,
    TriggerType.TIME_BASED: _time_based,
    TriggerType.USER_ACTION: _user_action,
    TriggerType.EXTERNAL_EVENT: _external_event,
    TriggerType.SCHEDULED: _scheduled,
}

_unhandled = set(TriggerType) - TRIGGER_EVALUATORS.keys()
if _unhandled:
    msg = f"Trigger types without an evaluator: {sorted(_unhandled)}"
    raise RuntimeError(msg)


def evaluate_trigger(
    trigger_type: TriggerType | str,
    config: Mapping[str, Any],
    context: Mapping[str, Any],
) -> bool:
    """Check whether a trigger matches the context.

    Args:
        trigger_type: The trigger type.
        config: The trigger configuration.
        context: The triggering context.

    Returns:
        Whether the trigger fires. Unknown trigger types never fire.
    """
    try:
        evaluator = TRIGGER_EVALUATORS[TriggerType(trigger_type)]
    except ValueError:
        logger.warning("Unknown trigger type %r", trigger_type)
        return False
    return evaluator(config, context)
