"""SQLAlchemy models for automation persistence.

This module defines the database models of the automation core:
- WorkflowModel: Stores a project's workflow definition and aggregate statistics
- WorkflowExecutionModel: Records one run of a workflow
- AutomationRuleModel: Stores a trigger/condition/action rule and its rolling statistics
- WorkflowCategoryModel: System-seeded status category
- WorkflowStatusModel: Project-specific work-item status
- WorkflowTransitionModel: Permitted status-to-status move
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID

from advanced_alchemy.base import UUIDAuditBase
from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import JSON, Enum, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from litestar_automation.core.types import (
    CategoryKey,
    ExecutionStatus,
    RuleStatus,
    TriggerType,
    WorkflowStatus,
)

__all__ = [
    "AutomationRuleModel",
    "JSONType",
    "WorkflowCategoryModel",
    "WorkflowExecutionModel",
    "WorkflowModel",
    "WorkflowStatusModel",
    "WorkflowTransitionModel",
]


# Cross-database JSON type: uses JSONB for PostgreSQL, JSON for others (SQLite, MySQL, etc.)
JSONType = JSON().with_variant(JSONB, "postgresql")


def _enum(enum_class: type[PyEnum]) -> Enum:
    """String-backed enum column storing member values."""
    return Enum(
        enum_class,
        native_enum=False,
        length=50,
        values_callable=lambda members: [member.value for member in members],
    )


class WorkflowModel(UUIDAuditBase):
    """Persisted workflow definition of a project.

    Attributes:
        project_id: Project the workflow belongs to.
        name: Display name.
        description: Optional description.
        definition: Stored definition mapping (nodes, connections, variables, settings).
        status: Authoring lifecycle status.
        is_active: Whether new executions may start.
        version: Monotonic version number of the definition.
        created_by: User who created the workflow.
        execution_count: Number of finished executions.
        success_rate: Percentage of finished executions that completed.
        average_execution_time: Mean execution time in milliseconds.
        last_executed_at: When the last execution finished.
    """

    __tablename__ = "automation_workflows"
    __table_args__ = (Index("ix_automation_workflows_project_active", "project_id", "is_active"),)

    project_id: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    definition: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    status: Mapped[WorkflowStatus] = mapped_column(_enum(WorkflowStatus), default=WorkflowStatus.DRAFT)
    is_active: Mapped[bool] = mapped_column(default=False)
    version: Mapped[int] = mapped_column(Integer, default=1)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    execution_count: Mapped[int] = mapped_column(Integer, default=0)
    success_rate: Mapped[float] = mapped_column(Float, default=0.0)
    average_execution_time: Mapped[float] = mapped_column(Float, default=0.0)
    last_executed_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)

    # Relationships
    executions: Mapped[list[WorkflowExecutionModel]] = relationship(
        back_populates="workflow",
        lazy="noload",
        passive_deletes=True,
    )


class WorkflowExecutionModel(UUIDAuditBase):
    """One run of a workflow against one triggering context.

    Executions are append-only apart from the status, result, log and timing
    fields written when the run finishes.

    Attributes:
        workflow_id: Foreign key to the workflow.
        trigger_event: Name of the triggering event.
        context: Execution context in its wire shape.
        status: Current execution status.
        execution_log: Log entries reported by the executor.
        result: Result map of a completed run.
        error_message: Error of a failed or timed out run.
        started_at: When the run was handed to the executor.
        completed_at: When the run reached a terminal status.
        execution_time: Wall-clock duration in milliseconds.
        retry_count: Number of retries in this execution's chain.
        max_retries: Retry limit stamped from the workflow settings.
        retry_of_id: The execution this one retries, if any.
    """

    __tablename__ = "automation_workflow_executions"
    __table_args__ = (
        Index("ix_automation_executions_workflow_id", "workflow_id"),
        Index("ix_automation_executions_status", "status"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        ForeignKey("automation_workflows.id", ondelete="CASCADE"),
    )
    trigger_event: Mapped[str] = mapped_column(String(255), default="")
    context: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    status: Mapped[ExecutionStatus] = mapped_column(_enum(ExecutionStatus), default=ExecutionStatus.PENDING)
    execution_log: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    execution_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, default=3)
    retry_of_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("automation_workflow_executions.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Relationships
    workflow: Mapped[WorkflowModel] = relationship(
        back_populates="executions",
        lazy="noload",
    )


class AutomationRuleModel(UUIDAuditBase):
    """Trigger/condition/action automation rule.

    Attributes:
        project_id: Project the rule belongs to.
        name: Display name.
        description: Optional description.
        trigger_type: Kind of trigger predicate.
        trigger_config: Configuration of the trigger predicate.
        conditions: Ordered rule conditions.
        actions: Actions, executed in ascending ``order``.
        status: Lifecycle status.
        is_active: Whether the rule may fire.
        execution_count: Number of execution attempts.
        success_rate: Rolling percentage of successful attempts.
        average_execution_time: Rolling mean attempt time in milliseconds.
        last_executed_at: When the last attempt happened.
        last_error: Error of the last failed attempt.
        created_by: Owner of the rule.
        tags: Free-form tags.
        category: Optional grouping label.
    """

    __tablename__ = "automation_rules"
    __table_args__ = (
        Index("ix_automation_rules_project_id", "project_id"),
        Index("ix_automation_rules_trigger_active", "trigger_type", "is_active"),
        Index("ix_automation_rules_created_by", "created_by"),
    )

    project_id: Mapped[str] = mapped_column(String(255))
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    trigger_type: Mapped[TriggerType] = mapped_column(_enum(TriggerType))
    trigger_config: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    conditions: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    actions: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    status: Mapped[RuleStatus] = mapped_column(_enum(RuleStatus), default=RuleStatus.ACTIVE)
    is_active: Mapped[bool] = mapped_column(default=True)

    execution_count: Mapped[int] = mapped_column(Integer, default=0)
    success_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    average_execution_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_executed_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[str] = mapped_column(String(255))
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)


class WorkflowCategoryModel(UUIDAuditBase):
    """System-owned status category.

    The set of keys is fixed and seeded once; display metadata is mutable.
    """

    __tablename__ = "workflow_categories"

    key: Mapped[CategoryKey] = mapped_column(_enum(CategoryKey), unique=True)
    display_name: Mapped[str] = mapped_column(String(100))
    color_hex: Mapped[str] = mapped_column(String(7), default="#6B7280")
    position: Mapped[int] = mapped_column(Integer, default=0)


class WorkflowStatusModel(UUIDAuditBase):
    """Project-specific work-item status bound to one category.

    Attributes:
        project_id: Project the status belongs to.
        category_id: Foreign key to the status category.
        name: Name, unique within the project.
        description: Optional description.
        color_hex: Display colour.
        position: Board order.
        is_default: Whether new work items start in this status.
        category: The bound category.
    """

    __tablename__ = "workflow_statuses"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_workflow_statuses_project_name"),
        Index("ix_workflow_statuses_project_id", "project_id"),
    )

    project_id: Mapped[str] = mapped_column(String(255))
    category_id: Mapped[UUID] = mapped_column(ForeignKey("workflow_categories.id", ondelete="RESTRICT"))
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color_hex: Mapped[str | None] = mapped_column(String(7), nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    is_default: Mapped[bool] = mapped_column(default=False)

    # Relationships
    category: Mapped[WorkflowCategoryModel] = relationship(lazy="joined")


class WorkflowTransitionModel(UUIDAuditBase):
    """Permitted move between two statuses of a project.

    Attributes:
        project_id: Project the transition belongs to.
        from_status_id: Source status. None matches any source status.
        to_status_id: Target status.
        name: Display name, e.g. "Start Progress".
        description: Optional description.
        allowed_roles: Roles allowed to perform the move. Empty allows everyone.
        conditions: Structural conditions such as ``requiredFields``,
            ``minStoryPoints`` and ``requireComment``.
        is_active: Whether the rule takes part in decisions.
        position: Tie-breaker among equally specific matches.
    """

    __tablename__ = "workflow_transitions"
    __table_args__ = (
        Index("ix_workflow_transitions_project_active", "project_id", "is_active"),
        Index("ix_workflow_transitions_to_status", "to_status_id"),
    )

    project_id: Mapped[str] = mapped_column(String(255))
    from_status_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("workflow_statuses.id", ondelete="CASCADE"),
        nullable=True,
    )
    to_status_id: Mapped[UUID] = mapped_column(ForeignKey("workflow_statuses.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    allowed_roles: Mapped[list[str]] = mapped_column(JSONType, default=list)
    conditions: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    is_active: Mapped[bool] = mapped_column(default=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
