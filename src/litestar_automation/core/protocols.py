"""Core protocols for litestar-automation.

This module defines the structural interfaces of the collaborators the
automation core talks to but does not own: the event bus, the handlers that
perform concrete rule actions, and the executor that runs a workflow graph.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from litestar_automation.core.models import ExecutionOutcome

__all__ = ["ActionHandler", "EventBus", "WorkflowExecutor"]


@runtime_checkable
class EventBus(Protocol):
    """Sink for lifecycle events emitted by the services.

    Example:
        >>> class PrintingBus:
        ...     async def emit(self, event_type: str, **payload: Any) -> None:
        ...         print(event_type, payload)
    """

    async def emit(self, event_type: str, **payload: Any) -> None:
        """Publish an event.

        Args:
            event_type: Dotted event name such as ``execution.completed``.
            **payload: Event attributes.
        """
        ...


@runtime_checkable
class ActionHandler(Protocol):
    """Callable performing one automation rule action.

    Handlers receive the action's configuration and the triggering context,
    and return a JSON-compatible mapping describing what they did. Raising
    marks the action as failed without aborting its siblings.
    """

    async def __call__(self, config: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
        """Perform the action."""
        ...


class WorkflowExecutor(Protocol):
    """Runs one workflow definition against one context under a timeout."""

    async def run(
        self,
        definition: Mapping[str, Any],
        context: Mapping[str, Any],
        timeout: float,
    ) -> ExecutionOutcome:
        """Execute the definition.

        Raises:
            ExecutionTimeoutError: If the run exceeds ``timeout`` seconds.
        """
        ...
