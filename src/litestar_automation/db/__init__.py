"""Database persistence layer for litestar-automation.

This module provides SQLAlchemy models and repositories for persisting
workflows, executions, automation rules, statuses and transitions.
"""

from __future__ import annotations

from litestar_automation.db.models import (
    AutomationRuleModel,
    WorkflowCategoryModel,
    WorkflowExecutionModel,
    WorkflowModel,
    WorkflowStatusModel,
    WorkflowTransitionModel,
)
from litestar_automation.db.repositories import (
    AutomationRuleRepository,
    WorkflowCategoryRepository,
    WorkflowExecutionRepository,
    WorkflowRepository,
    WorkflowStatusRepository,
    WorkflowTransitionRepository,
)

__all__ = [
    "AutomationRuleModel",
    "AutomationRuleRepository",
    "WorkflowCategoryModel",
    "WorkflowCategoryRepository",
    "WorkflowExecutionModel",
    "WorkflowExecutionRepository",
    "WorkflowModel",
    "WorkflowRepository",
    "WorkflowStatusModel",
    "WorkflowStatusRepository",
    "WorkflowTransitionModel",
    "WorkflowTransitionRepository",
]
