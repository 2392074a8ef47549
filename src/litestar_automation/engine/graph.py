"""Structural validation of workflow graphs.

This module provides the WorkflowGraph, which checks a workflow definition
before it is stored or executed: start and end nodes, type-specific node
configuration, connection endpoints and conditions, orphaned nodes and cycles.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from litestar_automation.core.conditions import is_valid_expression
from litestar_automation.core.definition import WorkflowDefinition
from litestar_automation.core.models import ValidationIssue, ValidationResult
from litestar_automation.core.types import NodeType

if TYPE_CHECKING:
    from litestar_automation.core.definition import Node

__all__ = ["REQUIRED_NODE_CONFIG", "WorkflowGraph", "validate_definition"]


REQUIRED_NODE_CONFIG: dict[NodeType, tuple[str, str]] = {
    NodeType.STATUS: ("status", "Status node must have a status"),
    NodeType.DECISION: ("condition", "Decision node must have a condition"),
    NodeType.ACTION: ("action", "Action node must have an action"),
    NodeType.APPROVAL: ("approvers", "Approval node must have at least one approver"),
}
"""Config key each node type requires, with the error reported when it is missing."""

_WHITE, _GREY, _BLACK = 0, 1, 2


class WorkflowGraph:
    """Graph view of a workflow definition used for validation.

    Attributes:
        definition: The workflow definition this graph represents.
    """

    def __init__(self, definition: WorkflowDefinition) -> None:
        """Initialize a workflow graph from a definition.

        Args:
            definition: The workflow definition to represent as a graph.
        """
        self.definition = definition
        self._successors: list[list[int]] = [
            [
                target
                for index in outgoing
                if (target := definition.node_index.get(definition.connections[index].target)) is not None
            ]
            for outgoing in definition.adjacency
        ]

    @classmethod
    def from_definition(cls, definition: WorkflowDefinition | dict[str, Any]) -> WorkflowGraph:
        """Create a workflow graph from a definition or its stored mapping.

        Example:
            >>> graph = WorkflowGraph.from_definition({"nodes": [], "connections": []})
        """
        if not isinstance(definition, WorkflowDefinition):
            definition = WorkflowDefinition.from_dict(definition)
        return cls(definition)

    def validate(self) -> ValidationResult:
        """Validate the workflow graph structure.

        Checks, in order: exactly one start node, at least one end node
        (warning), node types and configuration, connection endpoints and
        conditions, orphaned nodes (warning) and cycles.

        Returns:
            The validation result. Warnings do not make a definition invalid.

        Example:
            >>> result = graph.validate()
            >>> if not result.is_valid:
            ...     for issue in result.errors:
            ...         print(issue.message)
        """
        result = ValidationResult()
        self._check_start_and_end(result)
        self._check_nodes(result)
        self._check_connections(result)
        self._check_orphans(result)
        self._check_cycles(result)
        return result

    def _check_start_and_end(self, result: ValidationResult) -> None:
        start_count = len(self.definition.nodes_of_type(NodeType.START))
        if start_count == 0:
            result.errors.append(ValidationIssue(type="workflow", message="Workflow must have at least one start node"))
        elif start_count > 1:
            result.errors.append(ValidationIssue(type="workflow", message="Workflow can only have one start node"))

        if not self.definition.nodes_of_type(NodeType.END):
            result.warnings.append(
                ValidationIssue(
                    type="workflow",
                    message="Workflow should have at least one end node",
                    category="best_practice",
                    suggestion="Add an end node to mark where the workflow completes",
                )
            )

    def _check_nodes(self, result: ValidationResult) -> None:
        seen: set[str] = set()
        for node in self.definition.nodes:
            if not node.id:
                result.errors.append(ValidationIssue(type="node", message=f'Node "{node.label}" has no id'))
            elif node.id in seen:
                result.errors.append(
                    ValidationIssue(type="node", message=f"Duplicate node id: {node.id}", node_id=node.id)
                )
            seen.add(node.id)

            kind = node.kind
            if kind is None:
                result.errors.append(
                    ValidationIssue(type="node", message=f"Unknown node type: {node.type}", node_id=node.id)
                )
                continue
            message = self._check_node_config(node, kind)
            if message:
                result.errors.append(ValidationIssue(type="node", message=message, node_id=node.id))

    @staticmethod
    def _check_node_config(node: Node, kind: NodeType) -> str | None:
        required = REQUIRED_NODE_CONFIG.get(kind)
        if required is None:
            return None
        key, message = required
        value = node.config.get(key)
        if value is None or value == "" or value == []:
            return message
        if kind is NodeType.DECISION and not is_valid_expression(value):
            return "Decision node has an invalid condition"
        return None

    def _check_connections(self, result: ValidationResult) -> None:
        index = self.definition.node_index
        for connection in self.definition.connections:
            if connection.source not in index:
                result.errors.append(
                    ValidationIssue(
                        type="connection",
                        message=f"Source node not found: {connection.source}",
                        connection_id=connection.id,
                    )
                )
            if connection.target not in index:
                result.errors.append(
                    ValidationIssue(
                        type="connection",
                        message=f"Target node not found: {connection.target}",
                        connection_id=connection.id,
                    )
                )
            if connection.condition is not None and not is_valid_expression(connection.condition):
                result.errors.append(
                    ValidationIssue(
                        type="connection",
                        message=f"Connection has an invalid condition: {connection.id}",
                        connection_id=connection.id,
                    )
                )

    def _check_orphans(self, result: ValidationResult) -> None:
        connected: set[str] = set()
        for connection in self.definition.connections:
            connected.add(connection.source)
            connected.add(connection.target)
        for node in self.definition.nodes:
            if node.type != NodeType.START and node.id not in connected:
                result.warnings.append(
                    ValidationIssue(
                        type="node",
                        message=f'Node "{node.label}" is not connected to the workflow',
                        node_id=node.id,
                        category="best_practice",
                        suggestion="Connect this node or remove it",
                    )
                )

    def _check_cycles(self, result: ValidationResult) -> None:
        cycle = self.find_cycle()
        if cycle:
            path = " -> ".join(self.definition.nodes[position].id for position in cycle)
            result.errors.append(ValidationIssue(type="workflow", message=f"Workflow contains a cycle: {path}"))

    def find_cycle(self) -> list[int]:
        """Find a cycle with an iterative depth-first search.

        Returns:
            Node positions forming the cycle, with the first node repeated at
            the end. Empty if the graph is acyclic.
        """
        color = [_WHITE] * len(self.definition.nodes)
        for root in range(len(color)):
            if color[root] != _WHITE:
                continue
            stack: list[tuple[int, int]] = [(root, 0)]
            color[root] = _GREY
            while stack:
                node, child = stack[-1]
                successors = self._successors[node]
                if child >= len(successors):
                    color[node] = _BLACK
                    stack.pop()
                    continue
                stack[-1] = (node, child + 1)
                target = successors[child]
                if color[target] == _GREY:
                    trail = [position for position, _ in stack]
                    return [*trail[trail.index(target) :], target]
                if color[target] == _WHITE:
                    color[target] = _GREY
                    stack.append((target, 0))
        return []


def validate_definition(definition: WorkflowDefinition | dict[str, Any]) -> ValidationResult:
    """Validate a workflow definition or its stored mapping.

    Args:
        definition: The definition to validate.

    Returns:
        The validation result.
    """
    return WorkflowGraph.from_definition(definition).validate()
