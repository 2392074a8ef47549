"""Core type definitions for litestar-automation.

This module defines the enumerations used as tags throughout the automation
core. Every dynamic dispatch over a ``type`` string (nodes, triggers, actions)
goes through one of these enums so the registries can be checked for
exhaustiveness.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, TypeAlias

__all__ = [
    "ActionType",
    "CategoryKey",
    "ConditionOperator",
    "ExecutionStatus",
    "JSONMapping",
    "LogLevel",
    "LogicalOperator",
    "NodeType",
    "RuleStatus",
    "TriggerType",
    "WorkflowStatus",
]

JSONMapping: TypeAlias = dict[str, Any]
"""A JSON-compatible mapping as stored in JSON columns and sent to workers."""


class NodeType(StrEnum):
    """Classification of nodes within a workflow graph.

    Attributes:
        START: Entry point of the graph. Exactly one per definition.
        END: Terminal marker stamping the completion time.
        STATUS: Records a proposed work-item status.
        DECISION: Records the boolean result of its condition.
        ACTION: Records an action request for a dispatch collaborator.
        APPROVAL: Records an approval requirement.
        PARALLEL: Placeholder marker for a fan-out point.
        MERGE: Placeholder marker for a fan-in point.
    """

    START = "start"
    END = "end"
    STATUS = "status"
    DECISION = "decision"
    ACTION = "action"
    APPROVAL = "approval"
    PARALLEL = "parallel"
    MERGE = "merge"


class WorkflowStatus(StrEnum):
    """Authoring lifecycle of a stored workflow."""

    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class ExecutionStatus(StrEnum):
    """Status of a single workflow execution.

    Attributes:
        PENDING: Created or reset for retry, not yet running.
        RUNNING: Handed to the isolated executor.
        COMPLETED: Finished successfully.
        FAILED: The executor reported an error.
        CANCELLED: Marked cancelled by a caller.
        TIMEOUT: Killed after exceeding its wall-clock budget.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        """Whether no further automatic progress happens from this status."""
        return self in _TERMINAL_EXECUTION_STATUSES

    @property
    def is_retryable(self) -> bool:
        """Whether an execution in this status may be retried."""
        return self in _RETRYABLE_EXECUTION_STATUSES


_TERMINAL_EXECUTION_STATUSES = frozenset(
    {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
        ExecutionStatus.TIMEOUT,
    }
)
_RETRYABLE_EXECUTION_STATUSES = frozenset(
    {
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
        ExecutionStatus.TIMEOUT,
    }
)


class TriggerType(StrEnum):
    """Kinds of event-matching predicates an automation rule can use."""

    FIELD_CHANGE = "field_change"
    TIME_BASED = "time_based"
    USER_ACTION = "user_action"
    EXTERNAL_EVENT = "external_event"
    SCHEDULED = "scheduled"


class ActionType(StrEnum):
    """Closed set of side effects an automation rule can request."""

    UPDATE_FIELD = "update_field"
    SEND_NOTIFICATION = "send_notification"
    ASSIGN_USER = "assign_user"
    CREATE_ISSUE = "create_issue"
    UPDATE_STATUS = "update_status"
    SEND_EMAIL = "send_email"
    WEBHOOK_CALL = "webhook_call"
    DELAY = "delay"


class ConditionOperator(StrEnum):
    """Comparison operators usable in triggers and rule conditions.

    ``IS_EMPTY`` and ``IS_NOT_EMPTY`` are only meaningful for rule conditions.
    """

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


class LogicalOperator(StrEnum):
    """Connector between consecutive rule conditions."""

    AND = "AND"
    OR = "OR"


class RuleStatus(StrEnum):
    """Lifecycle status of an automation rule."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"
    TESTING = "testing"


class CategoryKey(StrEnum):
    """Fixed, system-seeded status categories in board order."""

    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELED = "canceled"


class LogLevel(StrEnum):
    """Severity of an execution log entry."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    DEBUG = "debug"
