"""Result models returned by the automation services.

These are plain dataclasses; none of them are persisted directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

__all__ = [
    "AvailableTransition",
    "ExecutionOutcome",
    "RuleAnalytics",
    "RuleExecutionResult",
    "SimulationResult",
    "TransitionCheckResult",
    "ValidationIssue",
    "ValidationResult",
]


@dataclass
class ValidationIssue:
    """A single problem found in a workflow definition.

    Attributes:
        type: What the issue concerns: ``node``, ``connection`` or ``workflow``.
        message: Human-readable description.
        node_id: Offending node, if any.
        connection_id: Offending connection, if any.
        category: Warning category such as ``best_practice``.
        suggestion: Optional hint on how to fix a warning.
    """

    type: str
    message: str
    node_id: str | None = None
    connection_id: str | None = None
    category: str | None = None
    suggestion: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize the issue, omitting unset fields."""
        data: dict[str, Any] = {"type": self.type, "message": self.message}
        if self.node_id is not None:
            data["nodeId"] = self.node_id
        if self.connection_id is not None:
            data["connectionId"] = self.connection_id
        if self.category is not None:
            data["category"] = self.category
        if self.suggestion is not None:
            data["suggestion"] = self.suggestion
        return data


@dataclass
class ValidationResult:
    """Outcome of validating a workflow definition."""

    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """True when no errors were found. Warnings do not invalidate."""
        return not self.errors

    @property
    def messages(self) -> list[str]:
        """Error messages only."""
        return [issue.message for issue in self.errors]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ``{isValid, errors, warnings}`` shape."""
        return {
            "isValid": self.is_valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


@dataclass
class ExecutionOutcome:
    """What the isolated executor reported for one run.

    Attributes:
        success: Whether the traversal finished without a node failure.
        result: Shared result map written by node handlers.
        logs: Execution log entries in visiting order.
        error: Error message when ``success`` is False.
        path: Ids of the executed nodes in visiting order.
        execution_time: Wall-clock milliseconds measured by the caller.
    """

    success: bool
    result: dict[str, Any] = field(default_factory=dict)
    logs: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    path: list[str] = field(default_factory=list)
    execution_time: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any], execution_time: float = 0.0) -> ExecutionOutcome:
        """Build an outcome from the worker's response payload."""
        return cls(
            success=bool(data.get("success")),
            result=dict(data.get("result") or {}),
            logs=list(data.get("logs") or []),
            error=data.get("error"),
            path=list(data.get("path") or []),
            execution_time=execution_time,
        )


@dataclass
class SimulationResult:
    """Outcome of a dry run. Nothing is persisted."""

    success: bool
    execution_path: list[str] = field(default_factory=list)
    execution_time: float = 0.0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    result: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase response shape."""
        return {
            "success": self.success,
            "executionPath": list(self.execution_path),
            "executionTime": self.execution_time,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "result": dict(self.result),
        }


@dataclass
class RuleExecutionResult:
    """Outcome of one automation rule attempt.

    Declines (inactive rule, unmet trigger, unmet conditions) are reported
    here with ``success=False`` rather than raised.
    """

    success: bool
    result: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize, omitting unset fields."""
        data: dict[str, Any] = {"success": self.success}
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class RuleAnalytics:
    """Rolling statistics of an automation rule."""

    rule_id: UUID
    execution_count: int
    success_rate: float
    average_execution_time: float
    last_executed_at: datetime | None

    @property
    def error_rate(self) -> float:
        """Percentage of failed attempts."""
        return 100.0 - self.success_rate if self.execution_count else 0.0


@dataclass
class TransitionCheckResult:
    """Decision of the transition state machine.

    Attributes:
        allowed: Whether the status change is legal.
        reason: Why it was denied.
        transition_name: Display name of the matched transition rule.
        requires_comment: Whether the caller must collect a comment.
    """

    allowed: bool
    reason: str | None = None
    transition_name: str | None = None
    requires_comment: bool = False


@dataclass
class AvailableTransition:
    """A status reachable from the current one for a given role."""

    to_status: str
    transition_name: str | None = None
    requires_comment: bool = False
    transition_id: UUID | None = None
