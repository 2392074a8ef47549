"""Litestar Automation - Workflow automation core for Litestar.

This package provides the automation layer of a project-management backend:
workflow graphs authored by users, automation rules reacting to events, and a
state machine gating work-item status changes.

Key Features:
    - Declarative, sandbox-free condition expressions
    - Workflow graph validation (start node, references, orphans, cycles)
    - Workflow runs isolated in worker processes under a hard timeout
    - Persisted executions with retries, cancellation and statistics
    - Trigger/condition/action automation rules with a scheduled scan
    - Project statuses and role-gated status transitions

Example:
    >>> from litestar_automation import WorkflowGraph
    >>>
    >>> result = WorkflowGraph.from_definition(
    ...     {
    ...         "nodes": [{"id": "start", "type": "start"}, {"id": "end", "type": "end"}],
    ...         "connections": [{"id": "c1", "source": "start", "target": "end"}],
    ...     }
    ... ).validate()
    >>> result.is_valid
    True
"""

from __future__ import annotations

from litestar_automation.__metadata__ import __project__, __version__
from litestar_automation.core import ExecutionContext, WorkflowDefinition, evaluate
from litestar_automation.engine import ExecutionOrchestrator, IsolatedExecutor, WorkflowGraph
from litestar_automation.exceptions import (
    AutomationError,
    CategoryNotFoundError,
    ExecutionFailedError,
    ExecutionNotFoundError,
    ExecutionTimeoutError,
    InvalidExecutionStateError,
    NotFoundError,
    RetryLimitExceededError,
    RuleNotFoundError,
    RuleValidationError,
    StatusNotFoundError,
    TransitionNotFoundError,
    ValidationError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from litestar_automation.plugin import AutomationPlugin, AutomationPluginConfig
from litestar_automation.rules import ActionRegistry, AutomationRuleEngine, ScheduledRuleScanner
from litestar_automation.transitions import TransitionStateMachine, WorkflowStatusService

__all__ = (
    "ActionRegistry",
    "AutomationError",
    "AutomationPlugin",
    "AutomationPluginConfig",
    "AutomationRuleEngine",
    "CategoryNotFoundError",
    "ExecutionContext",
    "ExecutionFailedError",
    "ExecutionNotFoundError",
    "ExecutionOrchestrator",
    "ExecutionTimeoutError",
    "InvalidExecutionStateError",
    "IsolatedExecutor",
    "NotFoundError",
    "RetryLimitExceededError",
    "RuleNotFoundError",
    "RuleValidationError",
    "ScheduledRuleScanner",
    "StatusNotFoundError",
    "TransitionNotFoundError",
    "TransitionStateMachine",
    "ValidationError",
    "WorkflowDefinition",
    "WorkflowGraph",
    "WorkflowNotFoundError",
    "WorkflowStatusService",
    "WorkflowValidationError",
    "__project__",
    "__version__",
    "evaluate",
)
