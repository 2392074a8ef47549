"""Execution context and log records.

This module provides the ExecutionContext dataclass carrying the triggering
event into a workflow run, and the ExecutionLog record appended by every
visited node. Both serialize to the camelCase wire shape used by the authoring
API and by the worker process payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from litestar_automation.core.types import LogLevel

__all__ = ["ExecutionContext", "ExecutionLog", "utcnow"]


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class ExecutionContext:
    """Triggering event and scope handed to a workflow execution.

    Attributes:
        trigger_event: Name of the event that started the execution.
        trigger_data: Payload of the triggering event.
        project_id: Project the execution belongs to.
        variables: Run-time variables, merged over the definition defaults.
        user_id: User that caused the triggering event, if any.
        issue_id: Work item the event concerns, if any.
        sprint_id: Sprint the event concerns, if any.
        metadata: Free-form metadata carried along unchanged.

    Example:
        >>> context = ExecutionContext(
        ...     trigger_event="issue.updated",
        ...     trigger_data={"status": "Done"},
        ...     project_id="proj-1",
        ... )
        >>> context.to_dict()["triggerEvent"]
        'issue.updated'
    """

    trigger_event: str
    trigger_data: dict[str, Any] = field(default_factory=dict)
    project_id: str | None = None
    variables: dict[str, Any] = field(default_factory=dict)
    user_id: str | None = None
    issue_id: str | None = None
    sprint_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the context to its wire shape.

        Optional identifiers are omitted when unset.

        Returns:
            A JSON-compatible mapping with camelCase keys.
        """
        data: dict[str, Any] = {
            "triggerEvent": self.trigger_event,
            "triggerData": dict(self.trigger_data),
            "variables": dict(self.variables),
            "projectId": self.project_id,
        }
        if self.user_id is not None:
            data["userId"] = self.user_id
        if self.issue_id is not None:
            data["issueId"] = self.issue_id
        if self.sprint_id is not None:
            data["sprintId"] = self.sprint_id
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionContext:
        """Build a context from its wire shape.

        Args:
            data: Mapping with camelCase keys.

        Returns:
            The parsed ExecutionContext.
        """
        return cls(
            trigger_event=data.get("triggerEvent") or "",
            trigger_data=dict(data.get("triggerData") or {}),
            project_id=data.get("projectId"),
            variables=dict(data.get("variables") or {}),
            user_id=data.get("userId"),
            issue_id=data.get("issueId"),
            sprint_id=data.get("sprintId"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class ExecutionLog:
    """Single entry in an execution log.

    Attributes:
        message: Human-readable description of what happened.
        level: Severity of the entry.
        node_id: Node the entry concerns, if any.
        data: Optional structured payload.
        timestamp: When the entry was recorded.
        id: Unique identifier of the entry.
    """

    message: str
    level: LogLevel = LogLevel.INFO
    node_id: str | None = None
    data: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: uuid4().hex)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the entry for JSON storage."""
        entry: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "level": str(self.level),
            "message": self.message,
            "nodeId": self.node_id,
        }
        if self.data is not None:
            entry["data"] = self.data
        return entry
