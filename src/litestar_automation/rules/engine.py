"""Automation rule engine.

This module provides the AutomationRuleEngine: ownership-scoped rule CRUD,
rule execution (trigger, conditions, then the ordered action batch), rolling
statistics, test runs, analytics and the scan over scheduled rules.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from litestar_automation.core.conditions import is_valid_expression
from litestar_automation.core.models import RuleAnalytics, RuleExecutionResult
from litestar_automation.core.types import ActionType, ConditionOperator, LogicalOperator, RuleStatus, TriggerType
from litestar_automation.db.models import AutomationRuleModel
from litestar_automation.db.repositories import AutomationRuleRepository
from litestar_automation.exceptions import RuleNotFoundError, RuleValidationError
from litestar_automation.rules.actions import ActionRegistry
from litestar_automation.rules.triggers import compile_comparison, conditions_met, evaluate_trigger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from litestar_automation.core.protocols import EventBus

__all__ = [
    "INACTIVE_RULE",
    "TRIGGER_NOT_MET",
    "CONDITIONS_NOT_MET",
    "AutomationRuleEngine",
    "normalize_rule_payload",
]

logger = logging.getLogger(__name__)

INACTIVE_RULE = "Rule is inactive"
TRIGGER_NOT_MET = "Trigger conditions not met"
CONDITIONS_NOT_MET = "Rule conditions not met"

_COMPARISON_OPERATORS = frozenset(
    {
        ConditionOperator.EQUALS,
        ConditionOperator.NOT_EQUALS,
        ConditionOperator.CONTAINS,
        ConditionOperator.GREATER_THAN,
        ConditionOperator.LESS_THAN,
    }
)
_TEMPORAL_OPERATORS = frozenset({ConditionOperator.EQUALS, ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN})
_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "trigger_type",
        "trigger_config",
        "conditions",
        "actions",
        "tags",
        "category",
        "is_active",
    }
)


def _validate_trigger(trigger_type: TriggerType, config: Mapping[str, Any], errors: list[str]) -> None:
    if trigger_type is TriggerType.FIELD_CHANGE:
        if not config.get("field"):
            errors.append("Field change trigger requires a field")
        if config.get("operator", ConditionOperator.EQUALS) not in _COMPARISON_OPERATORS:
            errors.append(f"Unsupported field change operator: {config.get('operator')}")
    elif trigger_type is TriggerType.TIME_BASED:
        if not config.get("field"):
            errors.append("Time based trigger requires a field")
        if config.get("operator") not in _TEMPORAL_OPERATORS:
            errors.append(f"Unsupported time based operator: {config.get('operator')}")
    elif trigger_type is TriggerType.USER_ACTION:
        if not config.get("eventType"):
            errors.append("User action trigger requires an eventType")
    elif trigger_type is TriggerType.EXTERNAL_EVENT:
        if not config.get("webhookUrl") or not config.get("eventType"):
            errors.append("External event trigger requires a webhookUrl and an eventType")


def _normalize_conditions(raw: Any, errors: list[str]) -> list[dict[str, Any]]:
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        errors.append("Conditions must be a list")
        return []
    conditions: list[dict[str, Any]] = []
    for position, condition in enumerate(raw):
        if not isinstance(condition, Mapping):
            errors.append(f"Condition {position} must be an object")
            continue
        condition = dict(condition)
        condition.setdefault("id", uuid4().hex)
        if not condition.get("field"):
            errors.append(f"Condition {position} requires a field")
        try:
            tree = compile_comparison(
                condition.get("field") or "",
                condition.get("operator") or "",
                condition.get("value"),
            )
        except ValueError:
            errors.append(f"Unknown condition operator: {condition.get('operator')}")
        else:
            if not is_valid_expression(tree):
                errors.append(f"Condition {position} has an unsupported value")
        connector = condition.get("logicalOperator")
        if connector is not None and str(connector).upper() not in {member.value for member in LogicalOperator}:
            errors.append(f"Unknown logical operator: {connector}")
        conditions.append(condition)
    return conditions


def _normalize_actions(raw: Any, errors: list[str]) -> list[dict[str, Any]]:
    if not raw or not isinstance(raw, (list, tuple)):
        errors.append("Rule must have at least one action")
        return []
    actions: list[dict[str, Any]] = []
    for position, action in enumerate(raw):
        if not isinstance(action, Mapping):
            errors.append(f"Action {position} must be an object")
            continue
        action = dict(action)
        action.setdefault("id", uuid4().hex)
        action.setdefault("order", position)
        action.setdefault("config", {})
        if action.get("type") not in {member.value for member in ActionType}:
            errors.append(f"Unknown action type: {action.get('type')}")
        order = action["order"]
        if isinstance(order, bool) or not isinstance(order, int):
            errors.append(f"Action {position} order must be an integer")
        if not isinstance(action["config"], Mapping):
            errors.append(f"Action {position} config must be an object")
        actions.append(action)
    return actions


def normalize_rule_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a rule payload and fill in defaults.

    Trigger configs in the ``{"type": ..., "config": {...}}`` envelope are
    unwrapped. Conditions and actions without an ``id`` get one, and actions
    without an ``order`` take their list position.

    Args:
        payload: Rule attributes keyed by model field name.

    Returns:
        The normalized payload.

    Raises:
        RuleValidationError: If the payload is malformed.
    """
    errors: list[str] = []
    data = dict(payload)

    if not data.get("name"):
        errors.append("Rule must have a name")

    try:
        trigger_type = TriggerType(data.get("trigger_type"))
    except ValueError:
        errors.append(f"Unknown trigger type: {data.get('trigger_type')}")
        trigger_type = None

    config = data.get("trigger_config") or {}
    if not isinstance(config, Mapping):
        errors.append("Trigger config must be an object")
        config = {}
    if "type" in config and isinstance(config.get("config"), Mapping):
        if trigger_type is not None and config["type"] != trigger_type:
            errors.append(f"Trigger config type {config['type']} does not match trigger type {trigger_type}")
        config = config["config"]
    data["trigger_config"] = dict(config)
    if trigger_type is not None:
        data["trigger_type"] = trigger_type
        _validate_trigger(trigger_type, data["trigger_config"], errors)

    data["conditions"] = _normalize_conditions(data.get("conditions"), errors)
    data["actions"] = _normalize_actions(data.get("actions"), errors)

    if errors:
        raise RuleValidationError(errors)
    return data


class AutomationRuleEngine:
    """Stores, evaluates and executes automation rules.

    Attributes:
        session: SQLAlchemy async session for database operations.
        actions: Registry of action handlers.
        event_bus: Optional event bus for emitting rule events.
    """

    def __init__(
        self,
        session: AsyncSession,
        actions: ActionRegistry | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        """Initialize the rule engine.

        Args:
            session: SQLAlchemy async session.
            actions: Optional action registry. Defaults to the default handlers.
            event_bus: Optional event bus for events.
        """
        self.session = session
        self.actions = actions or ActionRegistry()
        self.event_bus = event_bus
        self._rule_repo = AutomationRuleRepository(session=session)

    async def create_rule(
        self,
        project_id: str,
        user_id: str,
        *,
        name: str,
        trigger_type: TriggerType | str,
        actions: Sequence[Mapping[str, Any]],
        trigger_config: Mapping[str, Any] | None = None,
        conditions: Sequence[Mapping[str, Any]] | None = None,
        description: str | None = None,
        tags: Sequence[str] | None = None,
        category: str | None = None,
    ) -> AutomationRuleModel:
        """Create an active rule owned by ``user_id``.

        Raises:
            RuleValidationError: If the rule is malformed.

        Example:
            >>> rule = await engine.create_rule(
            ...     "proj-1",
            ...     "user-1",
            ...     name="Notify on done",
            ...     trigger_type="field_change",
            ...     trigger_config={"field": "issue.status", "operator": "equals", "value": "Done"},
            ...     actions=[{"type": "send_notification", "order": 0, "config": {"template": "done"}}],
            ... )
        """
        data = normalize_rule_payload(
            {
                "name": name,
                "trigger_type": trigger_type,
                "trigger_config": trigger_config,
                "conditions": conditions,
                "actions": actions,
            }
        )
        rule = AutomationRuleModel(
            project_id=project_id,
            name=name,
            description=description,
            trigger_type=data["trigger_type"],
            trigger_config=data["trigger_config"],
            conditions=data["conditions"],
            actions=data["actions"],
            status=RuleStatus.ACTIVE,
            is_active=True,
            execution_count=0,
            created_by=user_id,
            tags=list(tags or []),
            category=category,
        )
        rule = await self._rule_repo.add(rule, auto_commit=True)
        logger.info("Created rule %s in project %s", rule.id, project_id)
        return rule

    async def _get_owned(self, rule_id: UUID, user_id: str) -> AutomationRuleModel:
        rule = await self._rule_repo.get_owned(rule_id, user_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    async def get_rule(self, rule_id: UUID) -> AutomationRuleModel:
        """Get a rule by ID.

        Raises:
            RuleNotFoundError: If no such rule exists.
        """
        rule = await self._rule_repo.get_one_or_none(id=rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    async def get_rules(
        self,
        project_id: str,
        *,
        is_active: bool | None = None,
        trigger_type: TriggerType | str | None = None,
        category: str | None = None,
        search: str | None = None,
    ) -> Sequence[AutomationRuleModel]:
        """List the rules of a project, optionally filtered."""
        return await self._rule_repo.search(
            project_id,
            is_active=is_active,
            trigger_type=TriggerType(trigger_type) if trigger_type else None,
            category=category,
            search=search,
        )

    async def update_rule(self, rule_id: UUID, user_id: str, **changes: Any) -> AutomationRuleModel:
        """Update a rule owned by ``user_id``.

        Args:
            rule_id: The rule ID.
            user_id: The caller, who must be the rule's creator.
            **changes: New values keyed by model field name.

        Raises:
            RuleNotFoundError: If the rule does not exist or is not owned by the caller.
            RuleValidationError: If the updated rule would be malformed.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise RuleValidationError([f"Field cannot be updated: {field}" for field in sorted(unknown)])

        rule = await self._get_owned(rule_id, user_id)
        data = normalize_rule_payload(
            {
                "name": changes.get("name", rule.name),
                "trigger_type": changes.get("trigger_type", rule.trigger_type),
                "trigger_config": changes.get("trigger_config", rule.trigger_config),
                "conditions": changes.get("conditions", rule.conditions),
                "actions": changes.get("actions", rule.actions),
            }
        )
        for field in _UPDATABLE_FIELDS & set(changes):
            setattr(rule, field, data.get(field, changes[field]))
        if "is_active" in changes:
            rule.status = RuleStatus.ACTIVE if changes["is_active"] else RuleStatus.INACTIVE
        await self.session.commit()
        return rule

    async def delete_rule(self, rule_id: UUID, user_id: str) -> None:
        """Delete a rule owned by ``user_id``.

        Raises:
            RuleNotFoundError: If the rule does not exist or is not owned by the caller.
        """
        rule = await self._get_owned(rule_id, user_id)
        await self._rule_repo.delete(rule.id, auto_commit=True)
        logger.info("Deleted rule %s", rule_id)

    async def toggle_rule(self, rule_id: UUID, user_id: str) -> AutomationRuleModel:
        """Flip a rule between active and inactive.

        Raises:
            RuleNotFoundError: If the rule does not exist or is not owned by the caller.
        """
        rule = await self._get_owned(rule_id, user_id)
        rule.is_active = not rule.is_active
        rule.status = RuleStatus.ACTIVE if rule.is_active else RuleStatus.INACTIVE
        await self.session.commit()
        return rule

    async def execute_rule(self, rule_id: UUID, context: Mapping[str, Any]) -> RuleExecutionResult:
        """Evaluate a rule against a context and run its actions.

        Declines are returned, not raised: an inactive rule, an unmet trigger
        and unmet conditions each produce ``success=False`` with a reason and
        leave the statistics untouched. Every other attempt updates the
        rolling statistics. Actions run in ascending ``order``; a failing
        action is recorded and does not stop the others, but fails the
        attempt.

        Raises:
            RuleNotFoundError: If no such rule exists.
        """
        rule = await self.get_rule(rule_id)
        if not rule.is_active:
            return RuleExecutionResult(success=False, error=INACTIVE_RULE)

        started = time.perf_counter()
        try:
            if not evaluate_trigger(rule.trigger_type, rule.trigger_config, context):
                return RuleExecutionResult(success=False, error=TRIGGER_NOT_MET)
            if not conditions_met(rule.conditions, context):
                return RuleExecutionResult(success=False, error=CONDITIONS_NOT_MET)
            results, failures = await self._run_actions(rule.actions, context)
        except Exception as exc:
            logger.exception("Rule %s failed", rule_id)
            await self._record_attempt(rule, started, success=False, error=str(exc))
            return RuleExecutionResult(success=False, error=str(exc))

        error = None
        if failures:
            error = f"{len(failures)} of {len(rule.actions)} actions failed: {'; '.join(failures)}"
        await self._record_attempt(rule, started, success=not failures, error=error)
        if self.event_bus:
            await self.event_bus.emit("rule.executed", rule_id=rule.id, success=not failures)
        return RuleExecutionResult(success=not failures, result=results, error=error)

    async def _run_actions(
        self,
        actions: Sequence[Mapping[str, Any]],
        context: Mapping[str, Any],
    ) -> tuple[dict[str, Any], list[str]]:
        results: dict[str, Any] = {}
        failures: list[str] = []
        ordered = sorted(enumerate(actions), key=lambda item: (item[1].get("order", item[0]), item[0]))
        for position, action in ordered:
            action_id = str(action.get("id") or f"{action.get('type')}_{position}")
            try:
                results[action_id] = await self.actions.execute_action(
                    action.get("type") or "",
                    action.get("config") or {},
                    context,
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning("Action %s of type %s failed: %s", action_id, action.get("type"), exc)
                results[action_id] = {"error": str(exc)}
                failures.append(f"{action_id}: {exc}")
        return results, failures

    async def _record_attempt(
        self,
        rule: AutomationRuleModel,
        started: float,
        *,
        success: bool,
        error: str | None,
    ) -> None:
        await self._rule_repo.record_attempt(
            rule.id,
            success=success,
            execution_time=(time.perf_counter() - started) * 1000,
            error=error,
        )
        await self.session.commit()

    async def test_rule(self, rule_id: UUID, context: Mapping[str, Any]) -> RuleExecutionResult:
        """Execute a rule while it is marked as testing.

        The rule's previous status is restored afterwards, whatever the outcome.

        Raises:
            RuleNotFoundError: If no such rule exists.
        """
        rule = await self.get_rule(rule_id)
        previous = rule.status if rule.status != RuleStatus.TESTING else RuleStatus.ACTIVE
        rule.status = RuleStatus.TESTING
        await self.session.commit()
        try:
            return await self.execute_rule(rule_id, context)
        finally:
            rule.status = previous
            await self.session.commit()

    async def get_rule_analytics(self, rule_id: UUID) -> RuleAnalytics:
        """Return the rolling statistics of a rule.

        Raises:
            RuleNotFoundError: If no such rule exists.
        """
        rule = await self.get_rule(rule_id)
        return RuleAnalytics(
            rule_id=rule.id,
            execution_count=rule.execution_count,
            success_rate=rule.success_rate or 0.0,
            average_execution_time=rule.average_execution_time or 0.0,
            last_executed_at=rule.last_executed_at,
        )

    async def process_scheduled_rules(self) -> dict[UUID, RuleExecutionResult]:
        """Execute every active scheduled rule with an empty context.

        A rule that raises is logged and skipped; the scan continues.

        Returns:
            Results keyed by rule ID for the rules that ran.
        """
        outcomes: dict[UUID, RuleExecutionResult] = {}
        rules = await self._rule_repo.find_scheduled()
        logger.debug("Processing %d scheduled rules", len(rules))
        for rule in rules:
            try:
                outcomes[rule.id] = await self.execute_rule(rule.id, {})
            except Exception:
                logger.exception("Scheduled rule %s could not be executed", rule.id)
        return outcomes
