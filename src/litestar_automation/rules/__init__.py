"""Automation rules: triggers, conditions, actions and the scheduled scan."""

from __future__ import annotations

from litestar_automation.rules.actions import DEFAULT_HANDLERS, ActionRegistry
from litestar_automation.rules.engine import AutomationRuleEngine, normalize_rule_payload
from litestar_automation.rules.scheduler import ScheduledRuleScanner
from litestar_automation.rules.triggers import conditions_met, evaluate_condition, evaluate_trigger

__all__ = [
    "DEFAULT_HANDLERS",
    "ActionRegistry",
    "AutomationRuleEngine",
    "ScheduledRuleScanner",
    "conditions_met",
    "evaluate_condition",
    "evaluate_trigger",
    "normalize_rule_payload",
]
