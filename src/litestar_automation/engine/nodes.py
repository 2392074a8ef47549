"""Node handlers for the workflow executor.

Each node type maps to one handler in ``NODE_HANDLERS``. Handlers only record
into the shared run state: no handler performs side effects outside the
worker process. The registry is checked against ``NodeType`` at import time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from litestar_automation.core.conditions import evaluate
from litestar_automation.core.context import ExecutionLog, utcnow
from litestar_automation.core.types import LogLevel, NodeType

if TYPE_CHECKING:
    from litestar_automation.core.definition import Node, WorkflowDefinition

__all__ = ["NODE_HANDLERS", "NodeHandler", "RunState", "execute_node"]

logger = logging.getLogger(__name__)


@dataclass
class RunState:
    """Mutable state of one traversal.

    Attributes:
        data: Evaluation data for conditions: the context wire shape with
            ``variables`` merged over the definition defaults.
        result: Shared result map written by node handlers.
        logs: Serialized execution log entries.
        path: Ids of executed nodes in visiting order.
    """

    data: dict[str, Any]
    result: dict[str, Any] = field(default_factory=lambda: {"nodes": {}, "actions": []})
    logs: list[dict[str, Any]] = field(default_factory=list)
    path: list[str] = field(default_factory=list)

    @classmethod
    def for_run(cls, definition: WorkflowDefinition, context: dict[str, Any]) -> RunState:
        """Build the initial state for running ``definition`` against ``context``."""
        data = dict(context)
        data["variables"] = {**definition.variables, **(context.get("variables") or {})}
        return cls(data=data)

    def log(
        self,
        message: str,
        node: Node | None = None,
        level: LogLevel = LogLevel.INFO,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Append an execution log entry."""
        entry = ExecutionLog(message=message, level=level, node_id=node.id if node else None, data=data)
        self.logs.append(entry.to_dict())

    def record(self, node: Node, **values: Any) -> None:
        """Store the per-node result of ``node``."""
        self.result["nodes"][node.id] = {"type": node.type, **values}


NodeHandler = Callable[["Node", RunState], None]


def _start(node: Node, state: RunState) -> None:
    started_at = utcnow().isoformat()
    state.result["workflowStarted"] = True
    state.result["startedAt"] = started_at
    state.record(node, startedAt=started_at)


def _end(node: Node, state: RunState) -> None:
    completed_at = utcnow().isoformat()
    state.result["workflowCompleted"] = True
    state.result["completedAt"] = completed_at
    state.record(node, completedAt=completed_at)


def _status(node: Node, state: RunState) -> None:
    status = node.config.get("status")
    state.result["proposedStatus"] = status
    state.record(node, status=status)


def _decision(node: Node, state: RunState) -> None:
    state.record(node, result=evaluate(node.config.get("condition"), state.data))


def _action(node: Node, state: RunState) -> None:
    action = node.config.get("action")
    config = {key: value for key, value in node.config.items() if key != "action"}
    state.result["actions"].append({"nodeId": node.id, "action": action, "config": config})
    state.record(node, action=action, dispatched=False)


def _approval(node: Node, state: RunState) -> None:
    state.record(
        node,
        approvalRequired=True,
        approvers=list(node.config.get("approvers") or []),
        autoApprove=bool(node.config.get("autoApprove", False)),
    )


def _parallel(node: Node, state: RunState) -> None:
    state.record(node, branches=list(node.config.get("branches") or []))


def _merge(node: Node, state: RunState) -> None:
    state.record(node, mergeStrategy=node.config.get("mergeStrategy", "all"))


NODE_HANDLERS: dict[NodeType, NodeHandler] = {
    NodeType.START: _start,
    NodeType.END: _end,
    NodeType.STATUS: _status,
    NodeType.DECISION: _decision,
    NodeType.ACTION: _action,
    NodeType.APPROVAL: _approval,
    NodeType.PARALLEL: _parallel,
    NodeType.MERGE: _merge,
}

_unhandled = set(NodeType) - NODE_HANDLERS.keys()
if _unhandled:
    msg = f"Node types without a handler: {sorted(_unhandled)}"
    raise RuntimeError(msg)


def execute_node(node: Node, state: RunState) -> None:
    """Run the handler for ``node`` and log it.

    Raises:
        ValueError: If the node type has no handler.
    """
    kind = node.kind
    if kind is None:
        msg = f"Unknown node type: {node.type}"
        raise ValueError(msg)
    logger.debug("Executing %s node %s", kind, node.id)
    NODE_HANDLERS[kind](node, state)
    state.path.append(node.id)
    state.log(f"Executed {kind} node: {node.label}", node, data=state.result["nodes"].get(node.id))
