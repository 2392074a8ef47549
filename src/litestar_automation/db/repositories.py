"""Repository implementations for automation persistence.

This module provides async repositories for CRUD operations on the
automation models using advanced-alchemy's repository pattern.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from advanced_alchemy.filters import LimitOffset, OrderBy
from advanced_alchemy.repository import SQLAlchemyAsyncRepository
from sqlalchemy import and_, case, func, or_, select, update

from litestar_automation.core.context import utcnow
from litestar_automation.core.types import ExecutionStatus, RuleStatus, TriggerType, WorkflowStatus
from litestar_automation.db.models import (
    AutomationRuleModel,
    WorkflowCategoryModel,
    WorkflowExecutionModel,
    WorkflowModel,
    WorkflowStatusModel,
    WorkflowTransitionModel,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

__all__ = [
    "AutomationRuleRepository",
    "WorkflowCategoryRepository",
    "WorkflowExecutionRepository",
    "WorkflowRepository",
    "WorkflowStatusRepository",
    "WorkflowTransitionRepository",
]

_FINISHED_STATUSES = (
    ExecutionStatus.COMPLETED,
    ExecutionStatus.FAILED,
    ExecutionStatus.CANCELLED,
    ExecutionStatus.TIMEOUT,
)


class WorkflowRepository(SQLAlchemyAsyncRepository[WorkflowModel]):
    """Repository for stored workflows."""

    model_type = WorkflowModel

    async def get_active(self, workflow_id: UUID) -> WorkflowModel | None:
        """Get a workflow that may start new executions.

        Args:
            workflow_id: The workflow ID.

        Returns:
            The workflow, or None if it does not exist or is not active.
        """
        stmt = select(WorkflowModel).where(
            and_(
                WorkflowModel.id == workflow_id,
                WorkflowModel.is_active == True,  # noqa: E712
                WorkflowModel.status == WorkflowStatus.ACTIVE,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_project(self, project_id: str) -> Sequence[WorkflowModel]:
        """List the workflows of a project, newest first."""
        stmt = (
            select(WorkflowModel)
            .where(WorkflowModel.project_id == project_id)
            .order_by(WorkflowModel.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()


class WorkflowExecutionRepository(SQLAlchemyAsyncRepository[WorkflowExecutionModel]):
    """Repository for workflow executions."""

    model_type = WorkflowExecutionModel

    async def find_by_workflow(
        self,
        workflow_id: UUID,
        status: ExecutionStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[WorkflowExecutionModel], int]:
        """Find executions of a workflow, newest first.

        Args:
            workflow_id: The workflow ID.
            status: Optional status filter.
            limit: Maximum number of results.
            offset: Number of results to skip.

        Returns:
            Tuple of (executions, total_count).
        """
        conditions = [WorkflowExecutionModel.workflow_id == workflow_id]

        if status:
            conditions.append(WorkflowExecutionModel.status == status)

        return await self.list_and_count(
            *conditions,
            LimitOffset(limit=limit, offset=offset),
            OrderBy(field_name="created_at", sort_order="desc"),
        )

    async def reload(self, execution_id: UUID) -> WorkflowExecutionModel | None:
        """Re-read an execution, overwriting any state cached in the session."""
        stmt = (
            select(WorkflowExecutionModel)
            .where(WorkflowExecutionModel.id == execution_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def summarize(self, workflow_id: UUID) -> tuple[int, int, float]:
        """Aggregate the finished executions of a workflow.

        Returns:
            Tuple of (finished_count, completed_count, mean_execution_time).
        """
        stmt = select(
            func.count(WorkflowExecutionModel.id),
            func.coalesce(
                func.sum(case((WorkflowExecutionModel.status == ExecutionStatus.COMPLETED, 1), else_=0)),
                0,
            ),
            func.coalesce(func.avg(WorkflowExecutionModel.execution_time), 0.0),
        ).where(
            and_(
                WorkflowExecutionModel.workflow_id == workflow_id,
                WorkflowExecutionModel.status.in_(_FINISHED_STATUSES),
            )
        )
        count, completed, mean = (await self.session.execute(stmt)).one()
        return int(count), int(completed), float(mean)


class AutomationRuleRepository(SQLAlchemyAsyncRepository[AutomationRuleModel]):
    """Repository for automation rules, including the atomic statistics update."""

    model_type = AutomationRuleModel

    async def get_owned(self, rule_id: UUID, user_id: str) -> AutomationRuleModel | None:
        """Get a rule only if ``user_id`` created it."""
        stmt = select(AutomationRuleModel).where(
            and_(AutomationRuleModel.id == rule_id, AutomationRuleModel.created_by == user_id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def search(
        self,
        project_id: str,
        *,
        is_active: bool | None = None,
        trigger_type: TriggerType | None = None,
        category: str | None = None,
        search: str | None = None,
    ) -> Sequence[AutomationRuleModel]:
        """List the rules of a project matching the given filters.

        Args:
            project_id: The project ID.
            is_active: Optional active flag filter.
            trigger_type: Optional trigger type filter.
            category: Optional category filter.
            search: Optional case-insensitive text matched against name and description.

        Returns:
            Matching rules, newest first.
        """
        conditions = [AutomationRuleModel.project_id == project_id]

        if is_active is not None:
            conditions.append(AutomationRuleModel.is_active == is_active)
        if trigger_type:
            conditions.append(AutomationRuleModel.trigger_type == trigger_type)
        if category:
            conditions.append(AutomationRuleModel.category == category)
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                or_(
                    func.lower(AutomationRuleModel.name).like(pattern),
                    func.lower(AutomationRuleModel.description).like(pattern),
                )
            )

        stmt = select(AutomationRuleModel).where(and_(*conditions)).order_by(AutomationRuleModel.created_at.desc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_scheduled(self) -> Sequence[AutomationRuleModel]:
        """List active rules whose trigger is ``scheduled``."""
        stmt = (
            select(AutomationRuleModel)
            .where(
                and_(
                    AutomationRuleModel.trigger_type == TriggerType.SCHEDULED,
                    AutomationRuleModel.is_active == True,  # noqa: E712
                    AutomationRuleModel.status == RuleStatus.ACTIVE,
                )
            )
            .order_by(AutomationRuleModel.created_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def record_attempt(
        self,
        rule_id: UUID,
        *,
        success: bool,
        execution_time: float,
        error: str | None = None,
    ) -> AutomationRuleModel | None:
        """Fold one execution attempt into the rule's rolling statistics.

        The update is a single SQL ``UPDATE`` computed from the stored values,
        so concurrent attempts never lose increments.

        Args:
            rule_id: The rule ID.
            success: Whether the attempt succeeded.
            execution_time: Attempt duration in milliseconds.
            error: Error to store as ``last_error``. None keeps the previous one.

        Returns:
            The refreshed rule, or None if it no longer exists.
        """
        count = AutomationRuleModel.execution_count
        rate = func.coalesce(AutomationRuleModel.success_rate, 0.0)
        mean = func.coalesce(AutomationRuleModel.average_execution_time, 0.0)
        values = {
            "execution_count": count + 1,
            "success_rate": ((count * rate) / 100.0 + (1.0 if success else 0.0)) * 100.0 / (count + 1),
            "average_execution_time": (mean * count + execution_time) / (count + 1),
            "last_executed_at": utcnow(),
        }
        if error is not None:
            values["last_error"] = error

        await self.session.execute(
            update(AutomationRuleModel)
            .where(AutomationRuleModel.id == rule_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        stmt = (
            select(AutomationRuleModel)
            .where(AutomationRuleModel.id == rule_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class WorkflowCategoryRepository(SQLAlchemyAsyncRepository[WorkflowCategoryModel]):
    """Repository for the system-owned status categories."""

    model_type = WorkflowCategoryModel

    async def get_by_key(self, key: str) -> WorkflowCategoryModel | None:
        """Get a category by its key."""
        result = await self.session.execute(select(WorkflowCategoryModel).where(WorkflowCategoryModel.key == key))
        return result.scalar_one_or_none()

    async def list_ordered(self) -> Sequence[WorkflowCategoryModel]:
        """List all categories in board order."""
        result = await self.session.execute(select(WorkflowCategoryModel).order_by(WorkflowCategoryModel.position))
        return result.scalars().all()


class WorkflowStatusRepository(SQLAlchemyAsyncRepository[WorkflowStatusModel]):
    """Repository for project statuses."""

    model_type = WorkflowStatusModel

    async def find_by_project(self, project_id: str) -> Sequence[WorkflowStatusModel]:
        """List the statuses of a project in board order."""
        stmt = (
            select(WorkflowStatusModel)
            .where(WorkflowStatusModel.project_id == project_id)
            .order_by(WorkflowStatusModel.position, WorkflowStatusModel.name)
        )
        result = await self.session.execute(stmt)
        return result.unique().scalars().all()

    async def get_by_name(self, project_id: str, name: str) -> WorkflowStatusModel | None:
        """Get a status of a project by its name."""
        stmt = select(WorkflowStatusModel).where(
            and_(WorkflowStatusModel.project_id == project_id, WorkflowStatusModel.name == name)
        )
        result = await self.session.execute(stmt)
        return result.unique().scalar_one_or_none()

    async def get_default(self, project_id: str) -> WorkflowStatusModel | None:
        """Get the default status of a project."""
        stmt = select(WorkflowStatusModel).where(
            and_(
                WorkflowStatusModel.project_id == project_id,
                WorkflowStatusModel.is_default == True,  # noqa: E712
            )
        )
        result = await self.session.execute(stmt)
        return result.unique().scalars().first()


class WorkflowTransitionRepository(SQLAlchemyAsyncRepository[WorkflowTransitionModel]):
    """Repository for transition rules."""

    model_type = WorkflowTransitionModel

    async def find_by_project(
        self,
        project_id: str,
        *,
        active_only: bool = False,
    ) -> Sequence[WorkflowTransitionModel]:
        """List the transition rules of a project ordered by position.

        Args:
            project_id: The project ID.
            active_only: If True, only return active rules.
        """
        conditions = [WorkflowTransitionModel.project_id == project_id]

        if active_only:
            conditions.append(WorkflowTransitionModel.is_active == True)  # noqa: E712

        stmt = (
            select(WorkflowTransitionModel)
            .where(and_(*conditions))
            .order_by(WorkflowTransitionModel.position, WorkflowTransitionModel.created_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
