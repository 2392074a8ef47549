"""Workflow execution orchestration with database persistence.

This module provides the ExecutionOrchestrator, which owns the lifecycle of
workflow executions: it persists each run, hands the graph to an isolated
executor under a wall-clock timeout, records the outcome, and keeps the
workflow's aggregate statistics current. It also exposes cancellation,
retries, validation and dry-run simulation.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from anyio import CancelScope, get_cancelled_exc_class

from litestar_automation.core.context import ExecutionContext, utcnow
from litestar_automation.core.definition import WorkflowDefinition
from litestar_automation.core.models import SimulationResult
from litestar_automation.core.types import ExecutionStatus
from litestar_automation.db.models import WorkflowExecutionModel
from litestar_automation.db.repositories import WorkflowExecutionRepository, WorkflowRepository
from litestar_automation.engine.executor import IsolatedExecutor
from litestar_automation.engine.graph import WorkflowGraph
from litestar_automation.exceptions import (
    ExecutionFailedError,
    ExecutionNotFoundError,
    ExecutionTimeoutError,
    InvalidExecutionStateError,
    RetryLimitExceededError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from litestar_automation.core.models import ValidationResult
    from litestar_automation.core.protocols import EventBus, WorkflowExecutor
    from litestar_automation.db.models import WorkflowModel

__all__ = ["ALLOWED_STATUS_CHANGES", "ExecutionOrchestrator"]

logger = logging.getLogger(__name__)

ALLOWED_STATUS_CHANGES: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset({ExecutionStatus.RUNNING, ExecutionStatus.CANCELLED}),
    ExecutionStatus.RUNNING: frozenset(
        {
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.TIMEOUT,
            ExecutionStatus.CANCELLED,
        }
    ),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset({ExecutionStatus.PENDING}),
    ExecutionStatus.TIMEOUT: frozenset({ExecutionStatus.PENDING}),
    ExecutionStatus.CANCELLED: frozenset({ExecutionStatus.PENDING}),
}
"""Status changes an execution may make. Moving back to pending is the retry reset."""

_SIMULATION_CONTEXT: dict[str, Any] = {"triggerEvent": "simulation", "triggerData": {}, "variables": {}}


def _move(execution: WorkflowExecutionModel, status: ExecutionStatus) -> None:
    current = ExecutionStatus(execution.status)
    if status not in ALLOWED_STATUS_CHANGES[current]:
        raise InvalidExecutionStateError(execution.id, current, status)
    execution.status = status


class ExecutionOrchestrator:
    """Creates, runs and tracks workflow executions.

    Attributes:
        session: SQLAlchemy async session for database operations.
        executor: Executor running graphs in isolation.
        event_bus: Optional event bus for emitting execution events.
        default_timeout: Budget in seconds for definitions without
            ``maxExecutionTime``.
    """

    def __init__(
        self,
        session: AsyncSession,
        executor: WorkflowExecutor | None = None,
        event_bus: EventBus | None = None,
        default_timeout: float | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            session: SQLAlchemy async session.
            executor: Optional executor. Defaults to an IsolatedExecutor.
            event_bus: Optional event bus for events.
            default_timeout: Optional budget overriding the built-in default.
        """
        self.session = session
        self.executor = executor or IsolatedExecutor()
        self.event_bus = event_bus
        self.default_timeout = default_timeout

        # Initialize repositories
        self._workflow_repo = WorkflowRepository(session=session)
        self._execution_repo = WorkflowExecutionRepository(session=session)

    def _timeout_for(self, definition: WorkflowDefinition) -> float:
        if definition.settings.max_execution_time is None and self.default_timeout is not None:
            return self.default_timeout
        return definition.settings.timeout

    async def _emit(self, event_type: str, **payload: Any) -> None:
        if self.event_bus:
            await self.event_bus.emit(event_type, **payload)

    async def execute_workflow(
        self,
        workflow_id: UUID,
        context: ExecutionContext | Mapping[str, Any],
        *,
        retry_of: WorkflowExecutionModel | None = None,
    ) -> WorkflowExecutionModel:
        """Run an active workflow against a triggering context.

        Args:
            workflow_id: The workflow to run.
            context: The execution context or its wire shape.
            retry_of: The execution this run retries, if any.

        Returns:
            The completed execution. An execution cancelled while its run was
            in flight is returned unchanged. If the caller itself is cancelled
            mid-run, the row is recorded as cancelled before the cancellation
            propagates.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist or is not active.
            WorkflowValidationError: If the stored definition is invalid. No
                execution is created.
            ExecutionFailedError: If the executor reported an error.
            ExecutionTimeoutError: If the run exceeded its budget.
        """
        workflow = await self._workflow_repo.get_active(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)

        definition = WorkflowDefinition.from_dict(workflow.definition)
        validation = WorkflowGraph(definition).validate()
        if not validation.is_valid:
            raise WorkflowValidationError(validation.messages)

        context_data = context.to_dict() if isinstance(context, ExecutionContext) else dict(context)
        execution = await self._execution_repo.add(
            WorkflowExecutionModel(
                workflow_id=workflow.id,
                trigger_event=context_data.get("triggerEvent") or "",
                context=context_data,
                status=ExecutionStatus.RUNNING,
                execution_log=[],
                started_at=utcnow(),
                retry_count=retry_of.retry_count if retry_of else 0,
                max_retries=definition.settings.retry_limit,
                retry_of_id=retry_of.id if retry_of else None,
            ),
            auto_commit=True,
        )
        logger.info("Started execution %s of workflow %s", execution.id, workflow.id)
        await self._emit("execution.started", execution_id=execution.id, workflow_id=workflow.id)

        timeout = self._timeout_for(definition)
        started = time.perf_counter()
        try:
            outcome = await self.executor.run(workflow.definition, context_data, timeout)
        except ExecutionTimeoutError as exc:
            error = ExecutionTimeoutError(timeout, execution.id)
            if await self._finish(
                execution,
                ExecutionStatus.TIMEOUT,
                error=str(error),
                execution_time=(time.perf_counter() - started) * 1000,
            ):
                await self._update_workflow_stats(workflow)
                await self._emit("execution.timeout", execution_id=execution.id, workflow_id=workflow.id)
                raise error from exc
            return execution
        except get_cancelled_exc_class():
            with CancelScope(shield=True):
                if await self._finish(
                    execution,
                    ExecutionStatus.CANCELLED,
                    error="Execution interrupted before the run finished",
                    execution_time=(time.perf_counter() - started) * 1000,
                ):
                    await self._update_workflow_stats(workflow)
                    await self._emit("execution.cancelled", execution_id=execution.id, workflow_id=workflow.id)
            raise
        except Exception as exc:
            logger.exception("Executor crashed for execution %s", execution.id)
            if await self._finish(
                execution,
                ExecutionStatus.FAILED,
                error=str(exc),
                execution_time=(time.perf_counter() - started) * 1000,
            ):
                await self._update_workflow_stats(workflow)
                await self._emit("execution.failed", execution_id=execution.id, error=str(exc))
                raise ExecutionFailedError(execution.id, str(exc)) from exc
            return execution

        if not outcome.success:
            if await self._finish(
                execution,
                ExecutionStatus.FAILED,
                error=outcome.error,
                logs=outcome.logs,
                execution_time=outcome.execution_time,
            ):
                await self._update_workflow_stats(workflow)
                await self._emit("execution.failed", execution_id=execution.id, error=outcome.error)
                raise ExecutionFailedError(execution.id, outcome.error)
            return execution

        if await self._finish(
            execution,
            ExecutionStatus.COMPLETED,
            result=outcome.result,
            logs=outcome.logs,
            execution_time=outcome.execution_time,
        ):
            await self._update_workflow_stats(workflow)
            await self._emit("execution.completed", execution_id=execution.id, workflow_id=workflow.id)
        return execution

    async def _finish(
        self,
        execution: WorkflowExecutionModel,
        status: ExecutionStatus,
        *,
        result: dict[str, Any] | None = None,
        error: str | None = None,
        logs: list[dict[str, Any]] | None = None,
        execution_time: float | None = None,
    ) -> bool:
        """Record the terminal outcome of a run.

        Returns:
            False if the execution had already reached a terminal status, for
            example by being cancelled while the run was in flight.
        """
        current = await self._execution_repo.reload(execution.id)
        if current is None:
            raise ExecutionNotFoundError(execution.id)
        if ExecutionStatus(current.status).is_terminal:
            logger.info("Execution %s is already %s, discarding %s outcome", current.id, current.status, status)
            return False

        _move(current, status)
        current.result = result
        current.error_message = error
        if logs is not None:
            current.execution_log = logs
        current.execution_time = execution_time
        current.completed_at = utcnow()
        await self.session.commit()
        logger.info("Execution %s finished as %s", current.id, status)
        return True

    async def _update_workflow_stats(self, workflow: WorkflowModel) -> None:
        count, completed, mean = await self._execution_repo.summarize(workflow.id)
        workflow.execution_count = count
        workflow.success_rate = round(completed / count * 100, 2) if count else 0.0
        workflow.average_execution_time = round(mean, 2)
        workflow.last_executed_at = utcnow()
        await self.session.commit()

    async def get_execution(self, execution_id: UUID) -> WorkflowExecutionModel:
        """Get an execution by ID.

        Raises:
            ExecutionNotFoundError: If no such execution exists.
        """
        execution = await self._execution_repo.get_one_or_none(id=execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution

    async def get_workflow_executions(
        self,
        workflow_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[WorkflowExecutionModel], int]:
        """List the executions of a workflow, newest first.

        Returns:
            Tuple of (executions, total_count).
        """
        return await self._execution_repo.find_by_workflow(workflow_id, limit=limit, offset=offset)

    async def cancel_execution(self, execution_id: UUID) -> WorkflowExecutionModel:
        """Mark a pending or running execution as cancelled.

        Only the stored status changes: a worker already running the graph is
        not signalled, and its eventual outcome is discarded.

        Raises:
            ExecutionNotFoundError: If no such execution exists.
            InvalidExecutionStateError: If the execution already finished.
        """
        execution = await self.get_execution(execution_id)
        _move(execution, ExecutionStatus.CANCELLED)
        execution.completed_at = utcnow()
        await self.session.commit()
        logger.info("Cancelled execution %s", execution_id)
        await self._emit("execution.cancelled", execution_id=execution_id)
        return execution

    async def retry_execution(self, execution_id: UUID) -> WorkflowExecutionModel:
        """Retry a failed, timed out or cancelled execution.

        The retried row is reset to pending with its retry count incremented,
        then the workflow runs again with the original context, producing a
        new execution that continues the retry chain.

        Raises:
            ExecutionNotFoundError: If no such execution exists.
            RetryLimitExceededError: If the retry count reached the limit.
            InvalidExecutionStateError: If the execution is not retryable.
        """
        execution = await self.get_execution(execution_id)
        if execution.retry_count >= execution.max_retries:
            raise RetryLimitExceededError(execution_id, execution.max_retries)

        _move(execution, ExecutionStatus.PENDING)
        execution.retry_count += 1
        execution.error_message = None
        execution.completed_at = None
        await self.session.commit()
        logger.info(
            "Retrying execution %s (attempt %d of %d)",
            execution_id,
            execution.retry_count,
            execution.max_retries,
        )

        return await self.execute_workflow(execution.workflow_id, execution.context, retry_of=execution)

    def validate_workflow(self, definition: WorkflowDefinition | Mapping[str, Any]) -> ValidationResult:
        """Validate a definition without storing or running it."""
        return WorkflowGraph.from_definition(
            definition if isinstance(definition, WorkflowDefinition) else dict(definition)
        ).validate()

    async def simulate_workflow(
        self,
        definition: WorkflowDefinition | Mapping[str, Any],
        test_data: Mapping[str, Any] | None = None,
    ) -> SimulationResult:
        """Dry-run a definition. Nothing is persisted.

        Args:
            definition: The definition or its stored mapping.
            test_data: Execution context in its wire shape.

        Returns:
            The simulation result. Invalid definitions are reported, not run.
        """
        if not isinstance(definition, WorkflowDefinition):
            definition = WorkflowDefinition.from_dict(dict(definition))
        validation = WorkflowGraph(definition).validate()
        warnings = [issue.message for issue in validation.warnings]
        if not validation.is_valid:
            return SimulationResult(success=False, errors=validation.messages, warnings=warnings)

        context = dict(test_data or _SIMULATION_CONTEXT)
        try:
            outcome = await self.executor.run(definition.to_dict(), context, self._timeout_for(definition))
        except ExecutionTimeoutError as exc:
            return SimulationResult(success=False, errors=[str(exc)], warnings=warnings)

        return SimulationResult(
            success=outcome.success,
            execution_path=outcome.path,
            execution_time=outcome.execution_time,
            errors=[outcome.error] if outcome.error else [],
            warnings=warnings,
            result=outcome.result,
        )
