"""Workflow definition data model.

A definition is a flat table of nodes plus the connections between them.
Adjacency is index-based: nodes are addressed by their position in the node
table and each node owns the list of indices of its outgoing connections, in
definition order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

from litestar_automation.core.conditions import InvalidCondition, decode_condition
from litestar_automation.core.types import NodeType

__all__ = [
    "DEFAULT_MAX_EXECUTION_TIME",
    "DEFAULT_MAX_RETRIES",
    "Connection",
    "Node",
    "WorkflowDefinition",
    "WorkflowSettings",
]

DEFAULT_MAX_EXECUTION_TIME = 5.0
"""Wall-clock budget in seconds when a definition does not set one."""

DEFAULT_MAX_RETRIES = 3


def _decode_stored_condition(raw: Any) -> Any:
    if raw is None or raw == "":
        return None
    decoded = decode_condition(raw)
    if decoded is None:
        return InvalidCondition(raw)
    return decoded


def _encode_stored_condition(condition: Any) -> Any:
    if isinstance(condition, InvalidCondition):
        return condition.source
    return condition


@dataclass
class Node:
    """A single step in a workflow graph.

    Attributes:
        id: Identifier unique within the definition.
        type: Raw node type tag. Unknown tags are kept so the validator can
            report them.
        name: Display name.
        config: Type-specific configuration.
        description: Optional description.
    """

    id: str
    type: str
    name: str = ""
    config: dict[str, Any] = field(default_factory=dict)
    description: str | None = None

    @property
    def kind(self) -> NodeType | None:
        """The node type as an enum member, or None if the tag is unknown."""
        try:
            return NodeType(self.type)
        except ValueError:
            return None

    @property
    def label(self) -> str:
        """Name used in messages, falling back to the node id."""
        return self.name or self.id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        """Parse a node from its stored mapping.

        A ``condition`` in the config of a node is decoded into an operator
        tree here, once.
        """
        config = dict(data.get("config") or {})
        if "condition" in config:
            config["condition"] = _decode_stored_condition(config["condition"])
        return cls(
            id=str(data.get("id", "")),
            type=str(data.get("type", "")),
            name=data.get("name") or "",
            config=config,
            description=data.get("description"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the node to its stored mapping."""
        config = dict(self.config)
        if "condition" in config:
            config["condition"] = _encode_stored_condition(config["condition"])
        data: dict[str, Any] = {"id": self.id, "type": self.type, "name": self.name, "config": config}
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass
class Connection:
    """Directed, optionally conditioned edge between two nodes.

    Attributes:
        id: Identifier of the connection.
        source: Id of the source node.
        target: Id of the target node.
        condition: Decoded operator tree, an ``InvalidCondition`` marker, or None.
        label: Optional display label.
    """

    id: str
    source: str
    target: str
    condition: Any = None
    label: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Connection:
        """Parse a connection, decoding a legacy string condition once."""
        return cls(
            id=str(data.get("id", "")),
            source=str(data.get("source", "")),
            target=str(data.get("target", "")),
            condition=_decode_stored_condition(data.get("condition")),
            label=data.get("label"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the connection to its stored mapping."""
        data: dict[str, Any] = {"id": self.id, "source": self.source, "target": self.target}
        if self.condition is not None:
            data["condition"] = _encode_stored_condition(self.condition)
        if self.label is not None:
            data["label"] = self.label
        return data


@dataclass
class WorkflowSettings:
    """Execution settings of a workflow definition.

    Attributes:
        max_execution_time: Wall-clock budget in seconds, None for the default.
        retry_on_failure: Whether failed executions may be retried.
        max_retries: Retry limit when retries are enabled.
        allow_parallel_execution: Authoring flag carried through storage
            unchanged. Execution does not read it; concurrent runs of one
            workflow are always allowed.
    """

    max_execution_time: float | None = None
    retry_on_failure: bool = True
    max_retries: int = DEFAULT_MAX_RETRIES
    allow_parallel_execution: bool = False

    @property
    def timeout(self) -> float:
        """Effective wall-clock budget in seconds."""
        if self.max_execution_time is None or self.max_execution_time <= 0:
            return DEFAULT_MAX_EXECUTION_TIME
        return float(self.max_execution_time)

    @property
    def retry_limit(self) -> int:
        """Retry limit stamped onto new executions."""
        return self.max_retries if self.retry_on_failure else 0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> WorkflowSettings:
        """Parse settings from their camelCase mapping."""
        data = data or {}
        max_retries = data.get("maxRetries", data.get("retryCount", DEFAULT_MAX_RETRIES))
        return cls(
            max_execution_time=data.get("maxExecutionTime"),
            retry_on_failure=bool(data.get("retryOnFailure", True)),
            max_retries=int(max_retries),
            allow_parallel_execution=bool(data.get("allowParallelExecution", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize settings to their camelCase mapping."""
        return {
            "maxExecutionTime": self.max_execution_time,
            "retryOnFailure": self.retry_on_failure,
            "maxRetries": self.max_retries,
            "allowParallelExecution": self.allow_parallel_execution,
        }


@dataclass
class WorkflowDefinition:
    """A complete workflow graph.

    Treat a definition as immutable once built: the node index and adjacency
    lists are computed on first use and cached.

    Attributes:
        nodes: The flat node table.
        connections: All connections, in definition order.
        variables: Default variables, overridden by the execution context.
        settings: Execution settings.

    Example:
        >>> definition = WorkflowDefinition.from_dict(
        ...     {
        ...         "nodes": [{"id": "s", "type": "start"}, {"id": "e", "type": "end"}],
        ...         "connections": [{"id": "c1", "source": "s", "target": "e"}],
        ...     }
        ... )
        >>> [c.target for c in definition.outgoing("s")]
        ['e']
    """

    nodes: list[Node] = field(default_factory=list)
    connections: list[Connection] = field(default_factory=list)
    variables: dict[str, Any] = field(default_factory=dict)
    settings: WorkflowSettings = field(default_factory=WorkflowSettings)

    @cached_property
    def node_index(self) -> dict[str, int]:
        """Map of node id to position in the node table (first occurrence wins)."""
        index: dict[str, int] = {}
        for position, node in enumerate(self.nodes):
            index.setdefault(node.id, position)
        return index

    @cached_property
    def adjacency(self) -> list[list[int]]:
        """Outgoing connection indices per node position, in definition order.

        Connections whose source is unknown are not part of any list.
        """
        outgoing: list[list[int]] = [[] for _ in self.nodes]
        for position, connection in enumerate(self.connections):
            source = self.node_index.get(connection.source)
            if source is not None:
                outgoing[source].append(position)
        return outgoing

    def get_node(self, node_id: str) -> Node | None:
        """Return the node with ``node_id``, or None."""
        position = self.node_index.get(node_id)
        return self.nodes[position] if position is not None else None

    def nodes_of_type(self, node_type: NodeType) -> list[Node]:
        """Return all nodes of ``node_type`` in table order."""
        return [node for node in self.nodes if node.type == node_type]

    def outgoing(self, node_id: str) -> list[Connection]:
        """Return the outgoing connections of a node in definition order."""
        position = self.node_index.get(node_id)
        if position is None:
            return []
        return [self.connections[index] for index in self.adjacency[position]]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowDefinition:
        """Parse a definition from its stored mapping.

        Args:
            data: Mapping with ``nodes``, ``connections``, ``variables`` and
                ``settings`` keys.

        Returns:
            The parsed definition.
        """
        return cls(
            nodes=[Node.from_dict(node) for node in data.get("nodes") or []],
            connections=[Connection.from_dict(connection) for connection in data.get("connections") or []],
            variables=dict(data.get("variables") or {}),
            settings=WorkflowSettings.from_dict(data.get("settings")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the definition to a JSON-compatible mapping."""
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "connections": [connection.to_dict() for connection in self.connections],
            "variables": dict(self.variables),
            "settings": self.settings.to_dict(),
        }
