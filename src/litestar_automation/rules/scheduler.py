"""Periodic scan over scheduled automation rules.

Uses APScheduler 3.x with AsyncIOScheduler. One ScheduledRuleScanner is
owned by the application process and started and stopped with its lifespan.
Scans are single-flight: the job never overlaps itself, and a scan requested
while another is in flight is skipped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from litestar_automation.rules.engine import AutomationRuleEngine

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from litestar_automation.core.models import RuleExecutionResult
    from litestar_automation.core.protocols import EventBus
    from litestar_automation.rules.actions import ActionRegistry

__all__ = ["DEFAULT_SCAN_INTERVAL", "ScheduledRuleScanner"]

logger = logging.getLogger(__name__)

DEFAULT_SCAN_INTERVAL = 60.0
"""Seconds between two scans over scheduled rules."""


class ScheduledRuleScanner:
    """Runs every active scheduled rule at a fixed interval.

    Lifecycle:
        scanner = ScheduledRuleScanner(session_maker)
        await scanner.start()    # Called in lifespan startup
        ...
        await scanner.stop()     # Called in lifespan shutdown
    """

    JOB_ID = "automation:scheduled_rules"

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        actions: ActionRegistry | None = None,
        interval: float = DEFAULT_SCAN_INTERVAL,
        event_bus: EventBus | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        """Initialize the scanner.

        Args:
            session_maker: Factory for the session each scan runs in.
            actions: Action registry handed to the rule engine.
            interval: Seconds between scans.
            event_bus: Optional event bus handed to the rule engine.
            scheduler: Optional scheduler to register the job on.
        """
        self.session_maker = session_maker
        self.actions = actions
        self.interval = interval
        self.event_bus = event_bus
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self._lock = asyncio.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        """Whether the scanner's scheduler is started."""
        return self._running

    async def start(self) -> None:
        """Register the scan job and start the scheduler."""
        if self._running:
            return
        self._scheduler.add_job(
            self.scan,
            trigger=IntervalTrigger(seconds=self.interval),
            id=self.JOB_ID,
            replace_existing=True,
            name="automation:process_scheduled_rules",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=max(int(self.interval), 1),
        )
        self._scheduler.start()
        self._running = True
        logger.info("Scheduled rule scanner started, interval %ss", self.interval)

    async def stop(self) -> None:
        """Shut the scheduler down without waiting for a running scan."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduled rule scanner stopped")

    async def scan(self) -> dict[UUID, RuleExecutionResult] | None:
        """Execute all active scheduled rules once.

        Returns:
            Results keyed by rule ID, or None if the scan was skipped because
            another one is in flight.
        """
        if self._lock.locked():
            logger.warning("Scheduled rule scan skipped: previous scan still running")
            return None
        async with self._lock:
            async with self.session_maker() as session:
                engine = AutomationRuleEngine(session, actions=self.actions, event_bus=self.event_bus)
                outcomes = await engine.process_scheduled_rules()
            logger.info("Scheduled rule scan finished: %d rules executed", len(outcomes))
            return outcomes
