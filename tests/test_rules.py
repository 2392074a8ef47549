"""Tests for the AutomationRuleEngine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import uuid4

import pytest

from litestar_automation.core.types import RuleStatus, TriggerType
from litestar_automation.exceptions import RuleNotFoundError, RuleValidationError
from litestar_automation.rules.actions import ActionRegistry
from litestar_automation.rules.engine import (
    CONDITIONS_NOT_MET,
    INACTIVE_RULE,
    TRIGGER_NOT_MET,
    AutomationRuleEngine,
    normalize_rule_payload,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from litestar_automation.db.models import AutomationRuleModel
    from tests.conftest import MockEventBus

HIGH_PRIORITY = {"field": "issue.priority", "operator": "equals", "value": "high"}
NOTIFY = {"id": "notify", "type": "send_notification", "order": 0, "config": {"template": "escalated"}}


def _payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": "Escalate",
        "trigger_type": "field_change",
        "trigger_config": dict(HIGH_PRIORITY),
        "conditions": [],
        "actions": [dict(NOTIFY)],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def engine(async_session: AsyncSession) -> AutomationRuleEngine:
    """Rule engine with the default action handlers."""
    return AutomationRuleEngine(async_session)


@pytest.fixture
async def rule(engine: AutomationRuleEngine) -> AutomationRuleModel:
    """Active field change rule owned by user-1."""
    return await engine.create_rule(
        "proj-1",
        "user-1",
        name="Escalate",
        trigger_type=TriggerType.FIELD_CHANGE,
        trigger_config=HIGH_PRIORITY,
        actions=[NOTIFY],
        category="triage",
    )


@pytest.mark.unit
class TestNormalizeRulePayload:
    """Tests for rule payload validation."""

    def test_fills_defaults(self) -> None:
        data = normalize_rule_payload(
            _payload(
                conditions=[{"field": "issue.storyPoints", "operator": "greater_than", "value": 3}],
                actions=[{"type": "assign_user"}, {"type": "send_email", "config": {"to": "qa@example.com"}}],
            )
        )

        assert data["trigger_type"] is TriggerType.FIELD_CHANGE
        assert data["conditions"][0]["id"]
        assert [action["order"] for action in data["actions"]] == [0, 1]
        assert data["actions"][0]["config"] == {}
        assert data["actions"][1]["id"] != data["actions"][0]["id"]

    def test_unwraps_trigger_envelope(self) -> None:
        data = normalize_rule_payload(_payload(trigger_config={"type": "field_change", "config": HIGH_PRIORITY}))

        assert data["trigger_config"] == HIGH_PRIORITY

    def test_envelope_type_mismatch(self) -> None:
        with pytest.raises(RuleValidationError, match="does not match trigger type"):
            normalize_rule_payload(_payload(trigger_config={"type": "user_action", "config": HIGH_PRIORITY}))

    def test_collects_all_errors(self) -> None:
        with pytest.raises(RuleValidationError) as exc_info:
            normalize_rule_payload({"name": "", "trigger_type": "on_full_moon", "actions": []})

        assert exc_info.value.errors == [
            "Rule must have a name",
            "Unknown trigger type: on_full_moon",
            "Rule must have at least one action",
        ]

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"trigger_config": {"operator": "equals"}}, "Field change trigger requires a field"),
            ({"trigger_config": {"field": "issue.x", "operator": "is_empty"}}, "Unsupported field change operator"),
            (
                {"trigger_type": "time_based", "trigger_config": {"field": "issue.dueDate", "operator": "contains"}},
                "Unsupported time based operator: contains",
            ),
            ({"trigger_type": "user_action", "trigger_config": {}}, "User action trigger requires an eventType"),
            (
                {"trigger_type": "external_event", "trigger_config": {"eventType": "build.failed"}},
                "External event trigger requires a webhookUrl and an eventType",
            ),
            ({"trigger_config": ["not", "a", "mapping"]}, "Trigger config must be an object"),
            ({"conditions": {"field": "x"}}, "Conditions must be a list"),
            ({"conditions": ["x"]}, "Condition 0 must be an object"),
            ({"conditions": [{"operator": "equals", "value": 1}]}, "Condition 0 requires a field"),
            ({"conditions": [{"field": "x", "operator": "matches"}]}, "Unknown condition operator: matches"),
            ({"conditions": [{"field": "x", "operator": "equals", "value": object()}]}, "unsupported value"),
            (
                {"conditions": [{"field": "x", "operator": "equals", "logicalOperator": "XOR"}]},
                "Unknown logical operator: XOR",
            ),
            ({"actions": [{"type": "launch_rocket"}]}, "Unknown action type: launch_rocket"),
            ({"actions": [{"type": "delay", "order": "first"}]}, "Action 0 order must be an integer"),
            ({"actions": [{"type": "delay", "config": "1s"}]}, "Action 0 config must be an object"),
        ],
    )
    def test_rejects(self, overrides: dict[str, Any], message: str) -> None:
        with pytest.raises(RuleValidationError, match=message):
            normalize_rule_payload(_payload(**overrides))

    def test_scheduled_trigger_needs_no_config(self) -> None:
        assert normalize_rule_payload(_payload(trigger_type="scheduled", trigger_config=None))["trigger_config"] == {}


@pytest.mark.integration
class TestRuleCrud:
    """Tests for ownership-scoped rule management."""

    async def test_create_rule(self, rule: AutomationRuleModel) -> None:
        assert rule.status == RuleStatus.ACTIVE
        assert rule.is_active is True
        assert rule.execution_count == 0
        assert rule.created_by == "user-1"
        assert rule.actions[0]["id"] == "notify"

    async def test_create_invalid_rule(self, engine: AutomationRuleEngine) -> None:
        with pytest.raises(RuleValidationError):
            await engine.create_rule("proj-1", "user-1", name="Broken", trigger_type="field_change", actions=[])

        assert await engine.get_rules("proj-1") == []

    async def test_get_rules_filters(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        nightly = await engine.create_rule(
            "proj-1",
            "user-2",
            name="Nightly digest",
            description="Summarize stale issues",
            trigger_type="scheduled",
            actions=[{"type": "send_email", "config": {"to": "team@example.com"}}],
        )
        await engine.create_rule("proj-2", "user-1", name="Elsewhere", trigger_type="scheduled", actions=[NOTIFY])
        await engine.toggle_rule(nightly.id, "user-2")

        assert {r.id for r in await engine.get_rules("proj-1")} == {rule.id, nightly.id}
        assert [r.id for r in await engine.get_rules("proj-1", is_active=True)] == [rule.id]
        assert [r.id for r in await engine.get_rules("proj-1", trigger_type="scheduled")] == [nightly.id]
        assert [r.id for r in await engine.get_rules("proj-1", category="triage")] == [rule.id]
        assert [r.id for r in await engine.get_rules("proj-1", search="STALE")] == [nightly.id]

    async def test_update_rule(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        updated = await engine.update_rule(
            rule.id,
            "user-1",
            name="Escalate urgent",
            trigger_config={"type": "field_change", "config": {"field": "issue.priority", "value": "urgent"}},
            tags=["sla"],
        )

        assert updated.name == "Escalate urgent"
        assert updated.trigger_config == {"field": "issue.priority", "value": "urgent"}
        assert updated.tags == ["sla"]

    async def test_update_validates_merged_rule(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        with pytest.raises(RuleValidationError, match="at least one action"):
            await engine.update_rule(rule.id, "user-1", actions=[])

    async def test_update_unknown_field(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        with pytest.raises(RuleValidationError, match="Field cannot be updated: created_by"):
            await engine.update_rule(rule.id, "user-1", created_by="user-2")

    async def test_update_is_active_sets_status(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        updated = await engine.update_rule(rule.id, "user-1", is_active=False)

        assert updated.status == RuleStatus.INACTIVE

    async def test_foreign_rule_is_not_found(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        with pytest.raises(RuleNotFoundError):
            await engine.update_rule(rule.id, "user-2", name="Mine now")
        with pytest.raises(RuleNotFoundError):
            await engine.toggle_rule(rule.id, "user-2")
        with pytest.raises(RuleNotFoundError):
            await engine.delete_rule(rule.id, "user-2")

        assert (await engine.get_rule(rule.id)).name == "Escalate"

    async def test_toggle_rule(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        toggled = await engine.toggle_rule(rule.id, "user-1")
        assert (toggled.is_active, toggled.status) == (False, RuleStatus.INACTIVE)

        toggled = await engine.toggle_rule(rule.id, "user-1")
        assert (toggled.is_active, toggled.status) == (True, RuleStatus.ACTIVE)

    async def test_delete_rule(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        await engine.delete_rule(rule.id, "user-1")

        with pytest.raises(RuleNotFoundError):
            await engine.get_rule(rule.id)


@pytest.mark.integration
class TestExecuteRule:
    """Tests for rule execution and statistics."""

    async def test_success(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        result = await engine.execute_rule(rule.id, {"issue": {"priority": "high"}, "userId": "u-9"})

        assert result.success is True
        assert result.error is None
        assert result.result == {"notify": {"template": "escalated", "userId": "u-9", "sent": True}}
        assert rule.execution_count == 1
        assert rule.success_rate == 100.0
        assert rule.last_executed_at is not None

    @pytest.mark.parametrize(
        ("context", "reason"),
        [
            ({"issue": {"priority": "low"}}, TRIGGER_NOT_MET),
            ({"issue": {"priority": "high", "storyPoints": 1}}, CONDITIONS_NOT_MET),
        ],
    )
    async def test_declines_leave_stats_untouched(
        self, engine: AutomationRuleEngine, rule: AutomationRuleModel, context: dict[str, Any], reason: str
    ) -> None:
        await engine.update_rule(
            rule.id, "user-1", conditions=[{"field": "issue.storyPoints", "operator": "greater_than", "value": 3}]
        )

        result = await engine.execute_rule(rule.id, context)

        assert result.to_dict() == {"success": False, "error": reason}
        assert rule.execution_count == 0

    async def test_inactive_rule(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        await engine.toggle_rule(rule.id, "user-1")

        result = await engine.execute_rule(rule.id, {"issue": {"priority": "high"}})

        assert result.error == INACTIVE_RULE
        assert rule.execution_count == 0

    async def test_condition_fold(self, engine: AutomationRuleEngine) -> None:
        rule = await engine.create_rule(
            "proj-1",
            "user-1",
            name="Fold",
            trigger_type="user_action",
            trigger_config={"eventType": "issue.updated"},
            conditions=[
                {"field": "issue.type", "operator": "equals", "value": "bug", "logicalOperator": "AND"},
                {"field": "issue.priority", "operator": "equals", "value": "high", "logicalOperator": "OR"},
                {"field": "issue.blocked", "operator": "equals", "value": True},
            ],
            actions=[NOTIFY],
        )
        # (bug and high) or blocked
        context = {"eventType": "issue.updated", "issue": {"type": "story", "priority": "low", "blocked": True}}

        assert (await engine.execute_rule(rule.id, context)).success is True

    async def test_actions_run_in_order(self, async_session: AsyncSession) -> None:
        calls: list[str] = []

        async def record(config: Any, context: Any) -> dict[str, Any]:
            calls.append(config["step"])
            return {}

        engine = AutomationRuleEngine(async_session, ActionRegistry({"update_field": record}))
        rule = await engine.create_rule(
            "proj-1",
            "user-1",
            name="Ordered",
            trigger_type="scheduled",
            actions=[
                {"type": "update_field", "order": 2, "config": {"step": "third"}},
                {"type": "update_field", "order": 0, "config": {"step": "first"}},
                {"type": "update_field", "order": 1, "config": {"step": "second"}},
            ],
        )

        await engine.execute_rule(rule.id, {})

        assert calls == ["first", "second", "third"]

    async def test_failing_action_fails_attempt(self, async_session: AsyncSession) -> None:
        async def broken(config: Any, context: Any) -> dict[str, Any]:
            msg = "SMTP unavailable"
            raise RuntimeError(msg)

        engine = AutomationRuleEngine(async_session, ActionRegistry({"send_email": broken}))
        rule = await engine.create_rule(
            "proj-1",
            "user-1",
            name="Mail",
            trigger_type="scheduled",
            actions=[{"id": "mail", "type": "send_email", "order": 0}, dict(NOTIFY, order=1)],
        )

        result = await engine.execute_rule(rule.id, {})

        assert result.success is False
        assert result.error == "1 of 2 actions failed: mail: SMTP unavailable"
        assert result.result["mail"] == {"error": "SMTP unavailable"}
        assert result.result["notify"]["sent"] is True
        assert rule.last_error == result.error
        assert rule.success_rate == 0.0

    async def test_rolling_statistics(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        await engine.execute_rule(rule.id, {"issue": {"priority": "high"}})
        engine.actions.register("send_notification", _fail)
        await engine.execute_rule(rule.id, {"issue": {"priority": "high"}})

        analytics = await engine.get_rule_analytics(rule.id)

        assert analytics.execution_count == 2
        assert analytics.success_rate == pytest.approx(50.0)
        assert analytics.error_rate == pytest.approx(50.0)
        assert analytics.average_execution_time >= 0.0
        assert analytics.last_executed_at is not None

    async def test_analytics_before_first_run(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        analytics = await engine.get_rule_analytics(rule.id)

        assert (analytics.execution_count, analytics.success_rate, analytics.error_rate) == (0, 0.0, 0.0)
        assert analytics.last_executed_at is None

    async def test_unknown_rule(self, engine: AutomationRuleEngine) -> None:
        with pytest.raises(RuleNotFoundError):
            await engine.execute_rule(uuid4(), {})

    async def test_emits_event(self, async_session: AsyncSession, mock_event_bus: MockEventBus) -> None:
        engine = AutomationRuleEngine(async_session, event_bus=mock_event_bus)
        rule = await engine.create_rule("proj-1", "user-1", name="Nightly", trigger_type="scheduled", actions=[NOTIFY])

        await engine.execute_rule(rule.id, {})

        assert mock_event_bus.events == [("rule.executed", {"rule_id": rule.id, "success": True})]

    async def test_test_rule_restores_status(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        result = await engine.test_rule(rule.id, {"issue": {"priority": "high"}})

        assert result.success is True
        assert rule.status == RuleStatus.ACTIVE
        assert rule.execution_count == 1

    async def test_test_rule_restores_status_on_decline(
        self, engine: AutomationRuleEngine, rule: AutomationRuleModel
    ) -> None:
        result = await engine.test_rule(rule.id, {"issue": {"priority": "low"}})

        assert result.error == TRIGGER_NOT_MET
        assert rule.status == RuleStatus.ACTIVE

    async def test_test_rule_keeps_inactive_rule_inactive(
        self, engine: AutomationRuleEngine, rule: AutomationRuleModel
    ) -> None:
        await engine.toggle_rule(rule.id, "user-1")

        result = await engine.test_rule(rule.id, {"issue": {"priority": "high"}})

        assert result.error == INACTIVE_RULE
        assert rule.status == RuleStatus.INACTIVE
        assert rule.is_active is False


@pytest.mark.integration
class TestScheduledRules:
    """Tests for the scan over scheduled rules."""

    async def test_process_scheduled_rules(self, engine: AutomationRuleEngine, rule: AutomationRuleModel) -> None:
        nightly = await engine.create_rule(
            "proj-1", "user-1", name="Nightly", trigger_type="scheduled", actions=[NOTIFY]
        )
        paused = await engine.create_rule("proj-1", "user-1", name="Paused", trigger_type="scheduled", actions=[NOTIFY])
        await engine.toggle_rule(paused.id, "user-1")

        outcomes = await engine.process_scheduled_rules()

        assert list(outcomes) == [nightly.id]
        assert outcomes[nightly.id].success is True
        assert nightly.execution_count == 1
        assert rule.execution_count == 0


async def _fail(config: Any, context: Any) -> dict[str, Any]:
    msg = "delivery failed"
    raise RuntimeError(msg)
