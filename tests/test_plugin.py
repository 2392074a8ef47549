"""Tests for the AutomationPlugin integration with Litestar.

These tests verify that the plugin registers the automation services for
dependency injection and ties the scheduled rule scanner to the application
lifespan.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any
from uuid import UUID

import pytest
from litestar import Litestar, get, post
from litestar.di import Provide
from litestar.exceptions import ImproperlyConfiguredException
from litestar.status_codes import HTTP_200_OK, HTTP_201_CREATED
from litestar.testing import AsyncTestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from litestar_automation import AutomationPlugin, AutomationPluginConfig
from litestar_automation.engine.orchestrator import ExecutionOrchestrator
from litestar_automation.rules.actions import ActionRegistry
from litestar_automation.rules.engine import AutomationRuleEngine
from litestar_automation.transitions.machine import TransitionStateMachine
from litestar_automation.transitions.statuses import WorkflowStatusService
from tests.conftest import FakeExecutor, make_definition

# =============================================================================
# Route Handlers
# =============================================================================


@get("/projects/{project_id:str}/statuses")
async def list_statuses(project_id: str, automation_statuses: WorkflowStatusService) -> list[str]:
    statuses = await automation_statuses.find_by_project(project_id)
    if not statuses:
        statuses = await automation_statuses.create_defaults_for_project(project_id)
    return [status.name for status in statuses]


@post("/projects/{project_id:str}/transitions/check")
async def check_transition(
    project_id: str,
    data: dict[str, Any],
    automation_statuses: WorkflowStatusService,
    automation_transitions: TransitionStateMachine,
) -> dict[str, Any]:
    await automation_statuses.create_defaults_for_project(project_id)
    await automation_transitions.create_default_rules(project_id)
    result = await automation_transitions.is_transition_allowed(
        project_id, data["from"], data["to"], role=data.get("role")
    )
    return {"allowed": result.allowed, "reason": result.reason}


@post("/projects/{project_id:str}/rules")
async def create_rule(project_id: str, data: dict[str, Any], automation_rules: AutomationRuleEngine) -> dict[str, str]:
    rule = await automation_rules.create_rule(project_id, "user-1", **data)
    return {"id": str(rule.id)}


@post("/rules/{rule_id:uuid}/execute")
async def execute_rule(rule_id: UUID, data: dict[str, Any], automation_rules: AutomationRuleEngine) -> dict[str, Any]:
    result = await automation_rules.execute_rule(rule_id, data)
    return result.to_dict()


@post("/simulate")
async def simulate(data: dict[str, Any], automation_orchestrator: ExecutionOrchestrator) -> dict[str, Any]:
    result = await automation_orchestrator.simulate_workflow(data)
    return result.to_dict()


@get("/actions")
async def list_actions(automation_actions: ActionRegistry) -> list[str]:
    return sorted(automation_actions.list_action_types())


def _app(session_maker: async_sessionmaker[AsyncSession], plugin: AutomationPlugin) -> Litestar:
    async def provide_session() -> AsyncIterator[AsyncSession]:
        async with session_maker() as session:
            yield session

    return Litestar(
        route_handlers=[list_statuses, check_transition, create_rule, execute_rule, simulate, list_actions],
        dependencies={"db_session": Provide(provide_session)},
        plugins=[plugin],
    )


@pytest.fixture
def plugin(fake_executor: FakeExecutor) -> AutomationPlugin:
    """Plugin wired to the executor double."""
    return AutomationPlugin(AutomationPluginConfig(executor=fake_executor))


# =============================================================================
# Plugin Initialization
# =============================================================================


@pytest.mark.unit
class TestPluginInitialization:
    """Tests for registering dependencies."""

    def test_registers_dependency_keys(self, plugin: AutomationPlugin) -> None:
        app = Litestar(plugins=[plugin])

        for key in (
            "automation_actions",
            "automation_orchestrator",
            "automation_rules",
            "automation_statuses",
            "automation_transitions",
        ):
            assert key in app.dependencies

    def test_custom_dependency_keys(self) -> None:
        plugin = AutomationPlugin(AutomationPluginConfig(executor=FakeExecutor(), dependency_key_rules="rules"))

        app = Litestar(plugins=[plugin])

        assert "rules" in app.dependencies
        assert "automation_rules" not in app.dependencies

    def test_uses_provided_action_registry(self) -> None:
        registry = ActionRegistry()
        plugin = AutomationPlugin(AutomationPluginConfig(action_registry=registry, executor=FakeExecutor()))

        Litestar(plugins=[plugin])

        assert plugin.actions is registry

    def test_actions_before_init_raises(self) -> None:
        with pytest.raises(RuntimeError, match="has not been initialized"):
            _ = AutomationPlugin().actions

    def test_scanner_disabled_by_default(self, plugin: AutomationPlugin) -> None:
        Litestar(plugins=[plugin])

        assert plugin.scanner is None

    def test_scheduler_requires_session_maker(self) -> None:
        plugin = AutomationPlugin(AutomationPluginConfig(executor=FakeExecutor(), scheduler_enabled=True))

        with pytest.raises(ImproperlyConfiguredException, match="session_maker is required"):
            Litestar(plugins=[plugin])


# =============================================================================
# Dependency Injection
# =============================================================================


@pytest.mark.integration
class TestDependencyInjection:
    """Tests for the request-scoped services."""

    async def test_statuses(self, session_maker: async_sessionmaker[AsyncSession], plugin: AutomationPlugin) -> None:
        async with AsyncTestClient(app=_app(session_maker, plugin)) as client:
            response = await client.get("/projects/proj-1/statuses")

        assert response.status_code == HTTP_200_OK
        assert response.json() == ["Backlog", "To Do", "In Progress", "Done"]

    async def test_transitions(self, session_maker: async_sessionmaker[AsyncSession], plugin: AutomationPlugin) -> None:
        async with AsyncTestClient(app=_app(session_maker, plugin)) as client:
            response = await client.post(
                "/projects/proj-1/transitions/check",
                json={"from": "In Progress", "to": "Done", "role": "DEVELOPER"},
            )

        assert response.status_code == HTTP_201_CREATED
        assert response.json() == {"allowed": False, "reason": "Only PROJECT_LEAD or QA can mark as done"}

    async def test_rules_across_requests(
        self, session_maker: async_sessionmaker[AsyncSession], plugin: AutomationPlugin
    ) -> None:
        payload = {
            "name": "Escalate",
            "trigger_type": "field_change",
            "trigger_config": {"field": "issue.priority", "operator": "equals", "value": "high"},
            "actions": [{"id": "notify", "type": "send_notification", "order": 0, "config": {"template": "x"}}],
        }

        async with AsyncTestClient(app=_app(session_maker, plugin)) as client:
            created = await client.post("/projects/proj-1/rules", json=payload)
            rule_id = created.json()["id"]
            executed = await client.post(f"/rules/{rule_id}/execute", json={"issue": {"priority": "high"}})

        assert created.status_code == HTTP_201_CREATED
        assert executed.json() == {
            "success": True,
            "result": {"notify": {"template": "x", "userId": None, "sent": True}},
        }

    async def test_orchestrator_uses_configured_executor(
        self, session_maker: async_sessionmaker[AsyncSession], plugin: AutomationPlugin, fake_executor: FakeExecutor
    ) -> None:
        async with AsyncTestClient(app=_app(session_maker, plugin)) as client:
            response = await client.post("/simulate", json=make_definition())

        body = response.json()
        assert body["success"] is True
        assert body["executionPath"] == ["start", "end"]
        assert len(fake_executor.calls) == 1

    async def test_actions(self, session_maker: async_sessionmaker[AsyncSession], plugin: AutomationPlugin) -> None:
        async with AsyncTestClient(app=_app(session_maker, plugin)) as client:
            response = await client.get("/actions")

        assert "send_notification" in response.json()


# =============================================================================
# Scheduler Lifespan
# =============================================================================


@pytest.mark.integration
class TestSchedulerLifespan:
    """Tests for running the scanner with the application."""

    async def test_scanner_follows_app_lifespan(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        plugin = AutomationPlugin(
            AutomationPluginConfig(
                executor=FakeExecutor(),
                scheduler_enabled=True,
                scan_interval=3600,
                session_maker=session_maker,
            )
        )
        app = _app(session_maker, plugin)
        scanner = plugin.scanner
        assert scanner is not None
        assert scanner.interval == 3600

        async with AsyncTestClient(app=app):
            assert scanner.running

        assert not scanner.running
