"""Status categories and project statuses.

Categories are a fixed, ordered set seeded once by the system. Statuses are
project-scoped, unique by name within a project, each bound to exactly one
category, with at most one default per project.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from litestar_automation.core.types import CategoryKey
from litestar_automation.db.models import WorkflowCategoryModel, WorkflowStatusModel
from litestar_automation.db.repositories import WorkflowCategoryRepository, WorkflowStatusRepository
from litestar_automation.exceptions import CategoryNotFoundError, StatusNotFoundError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

__all__ = [
    "DEFAULT_CATEGORIES",
    "DEFAULT_STATUSES",
    "CategorySeed",
    "StatusSeed",
    "WorkflowStatusService",
    "category_for_status_name",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategorySeed:
    """Seed data of one system category."""

    key: CategoryKey
    display_name: str
    color_hex: str
    position: int


@dataclass(frozen=True)
class StatusSeed:
    """Seed data of one project status.

    Attributes:
        name: Status name.
        category_key: Category the status is bound to.
        position: Board order. Defaults to the seed's list position.
        color_hex: Display colour. Defaults to the category's colour.
        description: Optional description.
    """

    name: str
    category_key: CategoryKey
    position: int | None = None
    color_hex: str | None = None
    description: str | None = None


DEFAULT_CATEGORIES: tuple[CategorySeed, ...] = (
    CategorySeed(CategoryKey.BACKLOG, "Backlog", "#94A3B8", 0),
    CategorySeed(CategoryKey.TODO, "To Do", "#64748B", 1),
    CategorySeed(CategoryKey.IN_PROGRESS, "In Progress", "#F59E0B", 2),
    CategorySeed(CategoryKey.DONE, "Done", "#10B981", 3),
    CategorySeed(CategoryKey.CANCELED, "Canceled", "#EF4444", 4),
)

DEFAULT_STATUSES: tuple[StatusSeed, ...] = (
    StatusSeed("Backlog", CategoryKey.BACKLOG),
    StatusSeed("To Do", CategoryKey.TODO),
    StatusSeed("In Progress", CategoryKey.IN_PROGRESS),
    StatusSeed("Done", CategoryKey.DONE),
)
"""Statuses created for a project without a configured workflow. The first is the default."""


def category_for_status_name(name: str) -> CategoryKey:
    """Guess the category of a status from its name.

    Example:
        >>> category_for_status_name("Ready for QA")
        <CategoryKey.TODO: 'todo'>
    """
    lowered = name.lower()
    if "backlog" in lowered or "planning" in lowered:
        return CategoryKey.BACKLOG
    if any(word in lowered for word in ("done", "complete", "closed")):
        return CategoryKey.DONE
    if any(word in lowered for word in ("cancel", "reject", "won't")):
        return CategoryKey.CANCELED
    if any(word in lowered for word in ("todo", "to do", "ready")):
        return CategoryKey.TODO
    return CategoryKey.IN_PROGRESS


class WorkflowStatusService:
    """Manages status categories and project statuses.

    Attributes:
        session: SQLAlchemy async session for database operations.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the service.

        Args:
            session: SQLAlchemy async session.
        """
        self.session = session
        self._category_repo = WorkflowCategoryRepository(session=session)
        self._status_repo = WorkflowStatusRepository(session=session)

    async def seed_default_categories(self) -> Sequence[WorkflowCategoryModel]:
        """Create the system categories that do not exist yet.

        Existing categories keep their display metadata.

        Returns:
            All categories in board order.
        """
        existing = {category.key for category in await self._category_repo.list_ordered()}
        missing = [seed for seed in DEFAULT_CATEGORIES if seed.key not in existing]
        if missing:
            await self._category_repo.add_many(
                [
                    WorkflowCategoryModel(
                        key=seed.key,
                        display_name=seed.display_name,
                        color_hex=seed.color_hex,
                        position=seed.position,
                    )
                    for seed in missing
                ],
                auto_commit=True,
            )
            logger.info("Seeded %d status categories", len(missing))
        return await self._category_repo.list_ordered()

    async def list_categories(self) -> Sequence[WorkflowCategoryModel]:
        """List the categories in board order."""
        return await self._category_repo.list_ordered()

    async def get_category(self, key: CategoryKey | str) -> WorkflowCategoryModel:
        """Get a category by key, seeding the defaults if it is missing.

        Raises:
            CategoryNotFoundError: If the key is not a known category.
        """
        try:
            key = CategoryKey(key)
        except ValueError:
            raise CategoryNotFoundError(str(key)) from None
        category = await self._category_repo.get_by_key(key)
        if category is None:
            logger.info("Category %s not found, seeding defaults", key)
            await self.seed_default_categories()
            category = await self._category_repo.get_by_key(key)
        if category is None:
            raise CategoryNotFoundError(key)
        return category

    async def update_category(
        self,
        key: CategoryKey | str,
        *,
        display_name: str | None = None,
        color_hex: str | None = None,
        position: int | None = None,
    ) -> WorkflowCategoryModel:
        """Change the display metadata of a category. Keys are immutable."""
        category = await self.get_category(key)
        if display_name is not None:
            category.display_name = display_name
        if color_hex is not None:
            category.color_hex = color_hex
        if position is not None:
            category.position = position
        await self.session.commit()
        return category

    async def _clear_default(self, project_id: str, keep: WorkflowStatusModel) -> None:
        for status in await self._status_repo.find_by_project(project_id):
            if status.id != keep.id and status.is_default:
                status.is_default = False

    async def create_status(
        self,
        project_id: str,
        name: str,
        category_key: CategoryKey | str,
        *,
        description: str | None = None,
        color_hex: str | None = None,
        position: int = 0,
        is_default: bool = False,
    ) -> WorkflowStatusModel:
        """Create a project status.

        Creating a name that already exists in the project returns the
        existing status unchanged.

        Raises:
            CategoryNotFoundError: If the category key is unknown.
        """
        existing = await self._status_repo.get_by_name(project_id, name)
        if existing is not None:
            return existing

        category = await self.get_category(category_key)
        status = await self._status_repo.add(
            WorkflowStatusModel(
                project_id=project_id,
                category_id=category.id,
                name=name,
                description=description,
                color_hex=color_hex or category.color_hex,
                position=position,
                is_default=is_default,
            )
        )
        if is_default:
            await self._clear_default(project_id, status)
        await self.session.commit()
        await self.session.refresh(status, attribute_names=["category"])
        logger.debug("Created status %s in project %s", name, project_id)
        return status

    async def create_defaults_for_project(
        self,
        project_id: str,
        seeds: Sequence[StatusSeed] = DEFAULT_STATUSES,
    ) -> list[WorkflowStatusModel]:
        """Create an ordered list of statuses for a project.

        The first status becomes the project's default.
        """
        statuses = []
        for index, seed in enumerate(seeds):
            statuses.append(
                await self.create_status(
                    project_id,
                    seed.name,
                    seed.category_key,
                    description=seed.description,
                    color_hex=seed.color_hex,
                    position=seed.position if seed.position is not None else index,
                    is_default=index == 0,
                )
            )
        return statuses

    async def find_by_project(self, project_id: str) -> Sequence[WorkflowStatusModel]:
        """List the statuses of a project in board order."""
        return await self._status_repo.find_by_project(project_id)

    async def find_by_name(self, project_id: str, name: str) -> WorkflowStatusModel | None:
        """Get a project status by name, or None."""
        return await self._status_repo.get_by_name(project_id, name)

    async def get_status(self, status_id: UUID) -> WorkflowStatusModel:
        """Get a status by ID.

        Raises:
            StatusNotFoundError: If no such status exists.
        """
        status = await self._status_repo.get_one_or_none(id=status_id)
        if status is None:
            raise StatusNotFoundError(status_id)
        return status

    async def get_default_status(self, project_id: str) -> WorkflowStatusModel | None:
        """Get the default status of a project, or None."""
        return await self._status_repo.get_default(project_id)

    async def validate_status_for_project(self, project_id: str, name: str) -> bool:
        """Check whether ``name`` is a configured status of the project."""
        return await self.find_by_name(project_id, name) is not None

    async def update_status(self, status_id: UUID, **changes: Any) -> WorkflowStatusModel:
        """Update a status.

        Args:
            status_id: The status ID.
            **changes: Any of ``name``, ``description``, ``color_hex``,
                ``position``, ``is_default`` and ``category_key``.

        Raises:
            StatusNotFoundError: If no such status exists.
            ValidationError: If the new name is taken in the project.
        """
        status = await self.get_status(status_id)
        name = changes.get("name")
        if name and name != status.name:
            clash = await self._status_repo.get_by_name(status.project_id, name)
            if clash is not None:
                raise ValidationError([f'Status "{name}" already exists in this project'])
            status.name = name
        for field in ("description", "color_hex", "position"):
            if field in changes:
                setattr(status, field, changes[field])
        if "category_key" in changes:
            category = await self.get_category(changes["category_key"])
            status.category_id = category.id
        if "is_default" in changes:
            status.is_default = bool(changes["is_default"])
            if status.is_default:
                await self._clear_default(status.project_id, status)
        await self.session.commit()
        await self.session.refresh(status, attribute_names=["category"])
        return status

    async def delete_status(self, status_id: UUID) -> None:
        """Delete a status and, through the foreign keys, its transitions.

        Raises:
            StatusNotFoundError: If no such status exists.
        """
        status = await self.get_status(status_id)
        await self._status_repo.delete(status.id, auto_commit=True)
