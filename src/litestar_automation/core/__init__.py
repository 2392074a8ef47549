"""Core domain module for litestar-automation.

This module exports the building blocks shared by the engine, the rule engine
and the transition state machine: types, the execution context, the workflow
definition model, the condition evaluator, result models and protocols.
"""

from __future__ import annotations

from litestar_automation.core.conditions import InvalidCondition, decode_condition, evaluate, is_valid_expression
from litestar_automation.core.context import ExecutionContext, ExecutionLog
from litestar_automation.core.definition import Connection, Node, WorkflowDefinition, WorkflowSettings
from litestar_automation.core.models import (
    AvailableTransition,
    ExecutionOutcome,
    RuleAnalytics,
    RuleExecutionResult,
    SimulationResult,
    TransitionCheckResult,
    ValidationIssue,
    ValidationResult,
)
from litestar_automation.core.protocols import ActionHandler, EventBus, WorkflowExecutor
from litestar_automation.core.types import (
    ActionType,
    CategoryKey,
    ConditionOperator,
    ExecutionStatus,
    LogicalOperator,
    LogLevel,
    NodeType,
    RuleStatus,
    TriggerType,
    WorkflowStatus,
)

__all__ = [
    "ActionHandler",
    "ActionType",
    "AvailableTransition",
    "CategoryKey",
    "ConditionOperator",
    "Connection",
    "EventBus",
    "ExecutionContext",
    "ExecutionLog",
    "ExecutionOutcome",
    "ExecutionStatus",
    "InvalidCondition",
    "LogLevel",
    "LogicalOperator",
    "Node",
    "NodeType",
    "RuleAnalytics",
    "RuleExecutionResult",
    "RuleStatus",
    "SimulationResult",
    "TransitionCheckResult",
    "TriggerType",
    "ValidationIssue",
    "ValidationResult",
    "WorkflowDefinition",
    "WorkflowExecutor",
    "WorkflowSettings",
    "WorkflowStatus",
    "decode_condition",
    "evaluate",
    "is_valid_expression",
]
