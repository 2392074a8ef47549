"""Transition state machine gating work-item status changes.

A project without configured statuses, or with statuses but no active
transition rules, is open: every move is allowed. Otherwise a move must match
a transition rule, where a rule from the exact source status beats a wildcard
rule and ``position`` breaks ties.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from litestar_automation.core.models import AvailableTransition, TransitionCheckResult
from litestar_automation.core.types import CategoryKey
from litestar_automation.db.models import WorkflowTransitionModel
from litestar_automation.db.repositories import WorkflowTransitionRepository
from litestar_automation.exceptions import StatusNotFoundError, TransitionNotFoundError
from litestar_automation.transitions.statuses import WorkflowStatusService

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

__all__ = [
    "DEFAULT_DONE_ROLES",
    "TransitionStateMachine",
    "check_conditions",
    "select_transition",
]

logger = logging.getLogger(__name__)

DEFAULT_DONE_ROLES = ("PROJECT_LEAD", "QA")
"""Roles allowed to use the default "Mark as Done" transition."""

_UPDATABLE_FIELDS = frozenset({"name", "description", "allowed_roles", "conditions", "is_active", "position"})


def select_transition(
    transitions: Iterable[WorkflowTransitionModel],
    from_status_id: UUID | None,
    to_status_id: UUID,
) -> WorkflowTransitionModel | None:
    """Pick the most specific active rule for a move.

    Args:
        transitions: Candidate rules of the project.
        from_status_id: Current status, or None if it is not a configured status.
        to_status_id: Target status.

    Returns:
        The rule from the exact source status with the lowest position, else
        the wildcard rule with the lowest position, else None.
    """
    matches = [
        transition
        for transition in transitions
        if transition.is_active
        and transition.to_status_id == to_status_id
        and (
            transition.from_status_id is None
            or (from_status_id is not None and transition.from_status_id == from_status_id)
        )
    ]
    if not matches:
        return None
    return min(matches, key=lambda transition: (transition.from_status_id is None, transition.position))


def _read(subject: Any, field: str) -> Any:
    if isinstance(subject, Mapping):
        return subject.get(field)
    return getattr(subject, field, None)


def _story_points(subject: Any) -> float:
    points = _read(subject, "storyPoints")
    if points is None:
        points = _read(subject, "story_points")
    try:
        return float(points or 0)
    except (TypeError, ValueError):
        return 0.0


def check_conditions(transition: WorkflowTransitionModel, subject: Any) -> str | None:
    """Check a rule's structural conditions against a work item.

    ``noBlockers`` is accepted in the conditions but not enforced.

    Args:
        transition: The matched rule.
        subject: The work item, as a mapping or an object.

    Returns:
        The denial reason, or None if every condition holds.
    """
    conditions = transition.conditions or {}
    action = transition.name.lower()
    for field in conditions.get("requiredFields") or []:
        value = _read(subject, field)
        if value is None or value == "":
            return f'Field "{field}" must be filled before {action}'
    minimum = conditions.get("minStoryPoints")
    if minimum is not None and _story_points(subject) < minimum:
        return f"Issue must have at least {minimum} story points"
    return None


def _role_allowed(transition: WorkflowTransitionModel, role: str | None) -> bool:
    return not transition.allowed_roles or role in transition.allowed_roles


class TransitionStateMachine:
    """Decides which status changes are legal and manages transition rules.

    Attributes:
        session: SQLAlchemy async session for database operations.
        statuses: Status service resolving status names.
    """

    def __init__(self, session: AsyncSession, statuses: WorkflowStatusService | None = None) -> None:
        """Initialize the state machine.

        Args:
            session: SQLAlchemy async session.
            statuses: Optional status service sharing the session.
        """
        self.session = session
        self.statuses = statuses or WorkflowStatusService(session)
        self._repo = WorkflowTransitionRepository(session=session)

    async def is_transition_allowed(
        self,
        project_id: str,
        from_status: str,
        to_status: str,
        role: str | None = None,
        subject: Any = None,
    ) -> TransitionCheckResult:
        """Decide whether a work item may move between two statuses.

        Args:
            project_id: The project ID.
            from_status: Name of the current status.
            to_status: Name of the target status.
            role: Role of the acting user.
            subject: The work item, as a mapping or an object. Structural
                conditions are only checked when it is given.

        Returns:
            The decision, with the matched rule's name and whether a comment
            is required when allowed, or the denial reason.
        """
        target = await self.statuses.find_by_name(project_id, to_status)
        if target is None:
            if not await self.statuses.find_by_project(project_id):
                return TransitionCheckResult(allowed=True)
            return TransitionCheckResult(
                allowed=False,
                reason=f'Status "{to_status}" is not defined for this project',
            )

        rules = await self._repo.find_by_project(project_id, active_only=True)
        if not rules:
            return TransitionCheckResult(allowed=True)

        current = await self.statuses.find_by_name(project_id, from_status)
        transition = select_transition(rules, current.id if current else None, target.id)
        if transition is None:
            return TransitionCheckResult(
                allowed=False,
                reason=f'No transition defined from "{from_status}" to "{to_status}"',
            )

        if not _role_allowed(transition, role):
            return TransitionCheckResult(
                allowed=False,
                reason=f"Only {' or '.join(transition.allowed_roles)} can {transition.name.lower()}",
                transition_name=transition.name,
            )

        if subject is not None:
            reason = check_conditions(transition, subject)
            if reason is not None:
                return TransitionCheckResult(allowed=False, reason=reason, transition_name=transition.name)

        return TransitionCheckResult(
            allowed=True,
            transition_name=transition.name,
            requires_comment=bool((transition.conditions or {}).get("requireComment")),
        )

    async def get_available_transitions(
        self,
        project_id: str,
        from_status: str,
        role: str | None = None,
    ) -> list[AvailableTransition]:
        """List the statuses a work item may move to from ``from_status``.

        Each other status of the project is resolved the same way
        :meth:`is_transition_allowed` resolves it; targets whose rule the
        role may not use are left out.
        """
        statuses = await self.statuses.find_by_project(project_id)
        current = next((status for status in statuses if status.name == from_status), None)
        targets = [status for status in statuses if current is None or status.id != current.id]

        rules = await self._repo.find_by_project(project_id, active_only=True)
        if not rules:
            return [AvailableTransition(to_status=status.name) for status in targets]

        available: list[tuple[int, int, AvailableTransition]] = []
        for index, status in enumerate(targets):
            transition = select_transition(rules, current.id if current else None, status.id)
            if transition is None or not _role_allowed(transition, role):
                continue
            available.append(
                (
                    transition.position,
                    index,
                    AvailableTransition(
                        to_status=status.name,
                        transition_name=transition.name,
                        requires_comment=bool((transition.conditions or {}).get("requireComment")),
                        transition_id=transition.id,
                    ),
                )
            )
        available.sort(key=lambda item: (item[0], item[1]))
        return [item for _, _, item in available]

    async def _project_status(self, project_id: str, status_id: UUID) -> None:
        status = await self.statuses.get_status(status_id)
        if status.project_id != project_id:
            raise StatusNotFoundError(status_id, project_id)

    async def create_transition(
        self,
        project_id: str,
        *,
        to_status_id: UUID,
        name: str,
        from_status_id: UUID | None = None,
        description: str | None = None,
        allowed_roles: Sequence[str] | None = None,
        conditions: Mapping[str, Any] | None = None,
        position: int = 0,
        is_active: bool = True,
    ) -> WorkflowTransitionModel:
        """Create a transition rule.

        Args:
            project_id: The project ID.
            to_status_id: Target status.
            name: Display name, e.g. "Start Progress".
            from_status_id: Source status. None creates a wildcard rule.
            description: Optional description.
            allowed_roles: Roles allowed to use the rule. Empty allows everyone.
            conditions: Structural conditions.
            position: Tie-breaker among equally specific rules.
            is_active: Whether the rule takes part in decisions.

        Raises:
            StatusNotFoundError: If a referenced status does not belong to the project.
        """
        await self._project_status(project_id, to_status_id)
        if from_status_id is not None:
            await self._project_status(project_id, from_status_id)

        transition = await self._repo.add(
            WorkflowTransitionModel(
                project_id=project_id,
                from_status_id=from_status_id,
                to_status_id=to_status_id,
                name=name,
                description=description,
                allowed_roles=list(allowed_roles or []),
                conditions=dict(conditions or {}),
                position=position,
                is_active=is_active,
            ),
            auto_commit=True,
        )
        logger.debug("Created transition %s in project %s", name, project_id)
        return transition

    async def create_default_rules(self, project_id: str) -> list[WorkflowTransitionModel]:
        """Restrict moving into the project's done status to leads and QA.

        Returns:
            The created rules. Empty if the project has no done status.
        """
        statuses = await self.statuses.find_by_project(project_id)
        done = next((status for status in statuses if status.category.key == CategoryKey.DONE), None)
        if done is None:
            logger.info("Project %s has no done status, no default transitions created", project_id)
            return []
        transition = await self.create_transition(
            project_id,
            to_status_id=done.id,
            name="Mark as Done",
            description="Complete this issue",
            allowed_roles=DEFAULT_DONE_ROLES,
        )
        return [transition]

    async def find_by_project(self, project_id: str) -> Sequence[WorkflowTransitionModel]:
        """List every transition rule of a project ordered by position."""
        return await self._repo.find_by_project(project_id)

    async def get_transition(self, transition_id: UUID) -> WorkflowTransitionModel:
        """Get a transition rule by ID.

        Raises:
            TransitionNotFoundError: If no such rule exists.
        """
        transition = await self._repo.get_one_or_none(id=transition_id)
        if transition is None:
            raise TransitionNotFoundError(transition_id)
        return transition

    async def update_transition(self, transition_id: UUID, **changes: Any) -> WorkflowTransitionModel:
        """Update a transition rule.

        Only ``name``, ``description``, ``allowed_roles``, ``conditions``,
        ``is_active`` and ``position`` can change; other keys are ignored.

        Raises:
            TransitionNotFoundError: If no such rule exists.
        """
        transition = await self.get_transition(transition_id)
        for field, value in changes.items():
            if field in _UPDATABLE_FIELDS:
                setattr(transition, field, value)
        await self.session.commit()
        return transition

    async def delete_transition(self, transition_id: UUID) -> None:
        """Delete a transition rule.

        Raises:
            TransitionNotFoundError: If no such rule exists.
        """
        transition = await self.get_transition(transition_id)
        await self._repo.delete(transition.id, auto_commit=True)
