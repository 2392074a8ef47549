"""Litestar plugin for automation integration.

This module provides the AutomationPlugin, which wires the automation
services into Litestar's dependency injection and runs the scheduled rule
scanner for the lifetime of the application.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from litestar.di import Provide
from litestar.exceptions import ImproperlyConfiguredException
from litestar.plugins import InitPluginProtocol
from sqlalchemy.ext.asyncio import AsyncSession

from litestar_automation.engine.executor import IsolatedExecutor
from litestar_automation.engine.orchestrator import ExecutionOrchestrator
from litestar_automation.rules.actions import ActionRegistry
from litestar_automation.rules.engine import AutomationRuleEngine
from litestar_automation.rules.scheduler import DEFAULT_SCAN_INTERVAL, ScheduledRuleScanner
from litestar_automation.transitions.machine import TransitionStateMachine
from litestar_automation.transitions.statuses import WorkflowStatusService

if TYPE_CHECKING:
    from litestar.config.app import AppConfig
    from sqlalchemy.ext.asyncio import async_sessionmaker

    from litestar_automation.core.protocols import EventBus, WorkflowExecutor

__all__ = ["AutomationPlugin", "AutomationPluginConfig"]


@dataclass
class AutomationPluginConfig:
    """Configuration for the AutomationPlugin.

    Attributes:
        action_registry: Optional pre-configured ActionRegistry. If not
            provided, one with the default handlers is created.
        executor: Optional pre-configured executor. If not provided, an
            IsolatedExecutor is created.
        event_bus: Optional event bus handed to every service.
        default_timeout: Budget in seconds for definitions without
            ``maxExecutionTime``. None keeps the built-in default.
        scheduler_enabled: Whether to run the scheduled rule scanner.
        scan_interval: Seconds between scheduled rule scans.
        session_maker: Session factory used by the scanner. Required when
            ``scheduler_enabled`` is True.
        dependency_key_actions: Key of the ActionRegistry dependency.
        dependency_key_orchestrator: Key of the ExecutionOrchestrator dependency.
        dependency_key_rules: Key of the AutomationRuleEngine dependency.
        dependency_key_statuses: Key of the WorkflowStatusService dependency.
        dependency_key_transitions: Key of the TransitionStateMachine dependency.
    """

    action_registry: ActionRegistry | None = None
    executor: WorkflowExecutor | None = None
    event_bus: EventBus | None = None
    default_timeout: float | None = None
    scheduler_enabled: bool = False
    scan_interval: float = DEFAULT_SCAN_INTERVAL
    session_maker: async_sessionmaker[AsyncSession] | None = None
    dependency_key_actions: str = "automation_actions"
    dependency_key_orchestrator: str = "automation_orchestrator"
    dependency_key_rules: str = "automation_rules"
    dependency_key_statuses: str = "automation_statuses"
    dependency_key_transitions: str = "automation_transitions"


class AutomationPlugin(InitPluginProtocol):
    """Litestar plugin for workflow automation.

    The services are request-scoped and built from the request's
    ``db_session`` dependency, as provided by advanced-alchemy's
    ``SQLAlchemyPlugin``.

    Example:
        Basic usage::

            from litestar import Litestar, post
            from litestar_automation import AutomationPlugin, ExecutionOrchestrator


            @post("/workflows/{workflow_id:uuid}/execute")
            async def execute(
                workflow_id: UUID,
                data: dict,
                automation_orchestrator: ExecutionOrchestrator,
            ) -> dict:
                execution = await automation_orchestrator.execute_workflow(workflow_id, data)
                return {"id": str(execution.id), "status": execution.status}


            app = Litestar(
                route_handlers=[execute],
                plugins=[sqlalchemy_plugin, AutomationPlugin()],
            )
    """

    __slots__ = ("_actions", "_config", "_executor", "_scanner")

    def __init__(self, config: AutomationPluginConfig | None = None) -> None:
        """Initialize the plugin.

        Args:
            config: Optional configuration for the plugin.
        """
        self._config = config or AutomationPluginConfig()
        self._actions: ActionRegistry | None = None
        self._executor: WorkflowExecutor | None = None
        self._scanner: ScheduledRuleScanner | None = None

    @property
    def actions(self) -> ActionRegistry:
        """Get the action registry.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._actions is None:
            msg = "AutomationPlugin has not been initialized. Access actions after app init."
            raise RuntimeError(msg)
        return self._actions

    @property
    def scanner(self) -> ScheduledRuleScanner | None:
        """Get the scheduled rule scanner, or None if it is disabled."""
        return self._scanner

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Register the automation dependencies and the scanner lifespan hooks.

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.

        Raises:
            ImproperlyConfiguredException: If the scanner is enabled without
                a session maker.
        """
        config = self._config
        self._actions = config.action_registry or ActionRegistry()
        self._executor = config.executor or IsolatedExecutor()

        def provide_actions() -> ActionRegistry:
            return self._actions  # type: ignore[return-value]

        def provide_orchestrator(db_session: AsyncSession) -> ExecutionOrchestrator:
            return ExecutionOrchestrator(
                db_session,
                executor=self._executor,
                event_bus=config.event_bus,
                default_timeout=config.default_timeout,
            )

        def provide_rules(db_session: AsyncSession) -> AutomationRuleEngine:
            return AutomationRuleEngine(db_session, actions=self._actions, event_bus=config.event_bus)

        def provide_statuses(db_session: AsyncSession) -> WorkflowStatusService:
            return WorkflowStatusService(db_session)

        def provide_transitions(db_session: AsyncSession) -> TransitionStateMachine:
            return TransitionStateMachine(db_session)

        providers = {
            config.dependency_key_orchestrator: provide_orchestrator,
            config.dependency_key_rules: provide_rules,
            config.dependency_key_statuses: provide_statuses,
            config.dependency_key_transitions: provide_transitions,
        }
        app_config.dependencies[config.dependency_key_actions] = Provide(provide_actions, sync_to_thread=False)
        for key, provider in providers.items():
            app_config.dependencies[key] = Provide(provider, sync_to_thread=False)

        if config.scheduler_enabled:
            if config.session_maker is None:
                msg = "AutomationPluginConfig.session_maker is required when scheduler_enabled is True"
                raise ImproperlyConfiguredException(msg)
            self._scanner = ScheduledRuleScanner(
                config.session_maker,
                actions=self._actions,
                interval=config.scan_interval,
                event_bus=config.event_bus,
            )
            app_config.on_startup.append(self._scanner.start)
            app_config.on_shutdown.append(self._scanner.stop)

        return app_config

