"""Status categories, project statuses and the transition state machine."""

from __future__ import annotations

from litestar_automation.transitions.machine import TransitionStateMachine, select_transition
from litestar_automation.transitions.statuses import (
    DEFAULT_CATEGORIES,
    DEFAULT_STATUSES,
    StatusSeed,
    WorkflowStatusService,
)

__all__ = [
    "DEFAULT_CATEGORIES",
    "DEFAULT_STATUSES",
    "StatusSeed",
    "TransitionStateMachine",
    "WorkflowStatusService",
    "select_transition",
]
