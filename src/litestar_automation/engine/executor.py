"""Isolated workflow execution.

``run_workflow`` is a pure function from a request payload to a response
payload. ``IsolatedExecutor`` runs it in a worker process through
``anyio.to_process`` and races it against a wall-clock timeout; on expiry the
worker process is killed. Only JSON-compatible payloads cross the process
boundary.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable

import anyio
from anyio import to_process

from litestar_automation.core.conditions import evaluate
from litestar_automation.core.definition import WorkflowDefinition
from litestar_automation.core.models import ExecutionOutcome
from litestar_automation.core.types import LogLevel, NodeType
from litestar_automation.engine.nodes import RunState, execute_node
from litestar_automation.exceptions import ExecutionTimeoutError

if TYPE_CHECKING:
    from anyio import CapacityLimiter

    from litestar_automation.core.definition import Node

__all__ = ["IsolatedExecutor", "run_workflow"]

logger = logging.getLogger(__name__)


def _traverse(definition: WorkflowDefinition, start: Node, state: RunState) -> None:
    visited = {start.id}
    execute_node(start, state)
    stack = [iter(definition.outgoing(start.id))]
    while stack:
        connection = next(stack[-1], None)
        if connection is None:
            stack.pop()
            continue
        if connection.target in visited:
            continue
        target = definition.get_node(connection.target)
        if target is None:
            continue
        if connection.condition is not None and not evaluate(connection.condition, state.data):
            state.log(f"Skipped connection {connection.id}: condition not met", level=LogLevel.DEBUG)
            continue
        execute_node(target, state)
        visited.add(target.id)
        stack.append(iter(definition.outgoing(target.id)))


def run_workflow(payload: dict[str, Any]) -> dict[str, Any]:
    """Execute one workflow definition against one context.

    Starting at the single start node, outgoing connections are followed
    depth-first in definition order. Already visited targets are skipped, as
    are connections whose condition evaluates false.

    Args:
        payload: ``{"definition": ..., "context": ...}`` as JSON-compatible
            mappings.

    Returns:
        ``{"success", "result", "logs", "error", "path"}``.
    """
    definition = WorkflowDefinition.from_dict(payload.get("definition") or {})
    state = RunState.for_run(definition, dict(payload.get("context") or {}))

    starts = definition.nodes_of_type(NodeType.START)
    if not starts:
        error = "Workflow must have a start node"
        state.log(error, level=LogLevel.ERROR)
        return {"success": False, "result": state.result, "logs": state.logs, "error": error, "path": state.path}

    state.log("Workflow execution started")
    try:
        _traverse(definition, starts[0], state)
    except Exception as exc:  # noqa: BLE001
        # the worker reports failures as data; the caller persists and raises
        state.log(f"Workflow execution failed: {exc}", level=LogLevel.ERROR)
        return {"success": False, "result": state.result, "logs": state.logs, "error": str(exc), "path": state.path}

    state.log("Workflow execution completed")
    return {"success": True, "result": state.result, "logs": state.logs, "error": None, "path": state.path}


class IsolatedExecutor:
    """Runs workflow graphs in worker processes under a hard timeout.

    Attributes:
        target: Module-level callable executed in the worker. It must be
            importable by the worker process.
        limiter: Optional limiter bounding the number of concurrent workers.

    Example:
        >>> executor = IsolatedExecutor()
        >>> outcome = await executor.run(definition, context.to_dict(), timeout=5)
    """

    def __init__(
        self,
        target: Callable[[dict[str, Any]], dict[str, Any]] = run_workflow,
        limiter: CapacityLimiter | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            target: Callable executed in the worker process.
            limiter: Optional limiter for concurrent worker processes.
        """
        self.target = target
        self.limiter = limiter

    async def run(
        self,
        definition: WorkflowDefinition | Mapping[str, Any],
        context: Mapping[str, Any],
        timeout: float,
    ) -> ExecutionOutcome:
        """Execute a definition in a worker process.

        Args:
            definition: The definition or its stored mapping.
            context: The execution context in its wire shape.
            timeout: Wall-clock budget in seconds.

        Returns:
            The outcome reported by the worker, with the measured time in
            milliseconds.

        Raises:
            ExecutionTimeoutError: If the worker did not answer in time. The
                worker process is killed.
        """
        if isinstance(definition, WorkflowDefinition):
            definition = definition.to_dict()
        payload = {"definition": dict(definition), "context": dict(context)}

        started = time.perf_counter()
        try:
            with anyio.fail_after(timeout):
                response = await to_process.run_sync(self.target, payload, cancellable=True, limiter=self.limiter)
        except TimeoutError as exc:
            logger.warning("Workflow run exceeded %ss timeout, worker killed", timeout)
            raise ExecutionTimeoutError(timeout) from exc
        elapsed = (time.perf_counter() - started) * 1000
        return ExecutionOutcome.from_dict(response, execution_time=elapsed)
