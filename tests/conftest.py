"""Shared test fixtures for litestar-automation test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from advanced_alchemy.base import UUIDAuditBase
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from litestar_automation.core.models import ExecutionOutcome
from litestar_automation.core.types import WorkflowStatus
from litestar_automation.db.models import WorkflowModel

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Mapping

    from sqlalchemy.ext.asyncio import AsyncEngine


# =============================================================================
# Sample Definitions
# =============================================================================


def make_definition(**settings: Any) -> dict[str, Any]:
    """Build a stored definition: start -> review status -> notify action -> end.

    Args:
        **settings: camelCase workflow settings.

    Returns:
        The definition mapping as the authoring API stores it.
    """
    return {
        "nodes": [
            {"id": "start", "type": "start", "name": "Start"},
            {"id": "review", "type": "status", "name": "In Review", "config": {"status": "In Review"}},
            {
                "id": "notify",
                "type": "action",
                "name": "Notify",
                "config": {"action": "send_notification", "template": "review"},
            },
            {"id": "end", "type": "end", "name": "End"},
        ],
        "connections": [
            {"id": "c1", "source": "start", "target": "review"},
            {"id": "c2", "source": "review", "target": "notify"},
            {"id": "c3", "source": "notify", "target": "end"},
        ],
        "variables": {"threshold": 5},
        "settings": settings,
    }


@pytest.fixture
def linear_definition() -> dict[str, Any]:
    """Valid linear definition."""
    return make_definition()


@pytest.fixture
def branching_definition() -> dict[str, Any]:
    """Definition whose connections branch on ``triggerData.priority``."""
    return {
        "nodes": [
            {"id": "start", "type": "start"},
            {
                "id": "check",
                "type": "decision",
                "name": "High priority?",
                "config": {"condition": {"==": [{"var": "triggerData.priority"}, "high"]}},
            },
            {"id": "escalate", "type": "action", "config": {"action": "assign_user", "userId": "lead"}},
            {"id": "queue", "type": "status", "config": {"status": "Backlog"}},
            {"id": "end", "type": "end"},
        ],
        "connections": [
            {"id": "c1", "source": "start", "target": "check"},
            {
                "id": "c2",
                "source": "check",
                "target": "escalate",
                "condition": {"==": [{"var": "triggerData.priority"}, "high"]},
            },
            {
                "id": "c3",
                "source": "check",
                "target": "queue",
                "condition": '{"!=": [{"var": "triggerData.priority"}, "high"]}',
            },
            {"id": "c4", "source": "escalate", "target": "end"},
            {"id": "c5", "source": "queue", "target": "end"},
        ],
    }


@pytest.fixture
def sample_context() -> dict[str, Any]:
    """Execution context wire shape."""
    return {
        "triggerEvent": "issue.updated",
        "triggerData": {"priority": "high", "status": "In Progress"},
        "variables": {},
        "projectId": "proj-1",
        "userId": "user-1",
    }


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Create an async SQLite in-memory engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(UUIDAuditBase.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def async_session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Create an async session for testing."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def make_workflow(async_session: AsyncSession) -> Callable[..., Awaitable[WorkflowModel]]:
    """Factory persisting a workflow row, active by default."""

    async def _make(definition: Mapping[str, Any] | None = None, **values: Any) -> WorkflowModel:
        workflow = WorkflowModel(
            project_id=values.pop("project_id", "proj-1"),
            name=values.pop("name", "Review flow"),
            definition=dict(definition if definition is not None else make_definition()),
            status=values.pop("status", WorkflowStatus.ACTIVE),
            is_active=values.pop("is_active", True),
            **values,
        )
        async_session.add(workflow)
        await async_session.commit()
        return workflow

    return _make


# =============================================================================
# Collaborator Doubles
# =============================================================================


class MockEventBus:
    """Event bus recording every emitted event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def emit(self, event_type: str, **payload: Any) -> None:
        """Record an event."""
        self.events.append((event_type, payload))

    @property
    def types(self) -> list[str]:
        """Emitted event types in order."""
        return [event_type for event_type, _ in self.events]


class FakeExecutor:
    """Executor double returning a canned outcome without a worker process.

    Attributes:
        outcome: Outcome returned by ``run``.
        error: Exception raised by ``run`` instead, if set.
        before_return: Optional coroutine function awaited inside ``run``.
        calls: Arguments of every call.
    """

    def __init__(
        self,
        outcome: ExecutionOutcome | None = None,
        error: BaseException | None = None,
        before_return: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self.outcome = outcome or ExecutionOutcome(
            success=True,
            result={"nodes": {}, "actions": [], "workflowCompleted": True},
            logs=[{"message": "Workflow execution completed", "level": "info"}],
            path=["start", "end"],
            execution_time=12.5,
        )
        self.error = error
        self.before_return = before_return
        self.calls: list[tuple[Mapping[str, Any], Mapping[str, Any], float]] = []

    async def run(self, definition: Mapping[str, Any], context: Mapping[str, Any], timeout: float) -> ExecutionOutcome:
        """Record the call and answer with the canned outcome."""
        self.calls.append((definition, context, timeout))
        if self.before_return is not None:
            await self.before_return()
        if self.error is not None:
            raise self.error
        return self.outcome


@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Create a recording event bus."""
    return MockEventBus()


@pytest.fixture
def fake_executor() -> FakeExecutor:
    """Create an executor double with a successful outcome."""
    return FakeExecutor()


def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers.

    Args:
        config: Pytest configuration object.
    """
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Tests that take more than 1 second")
