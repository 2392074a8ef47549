"""Workflow engine: graph validation, isolated execution and orchestration.

This module validates workflow graphs, runs them in a worker process and
manages the persisted execution lifecycle around each run.
"""

from __future__ import annotations

from litestar_automation.engine.executor import IsolatedExecutor, run_workflow
from litestar_automation.engine.graph import WorkflowGraph, validate_definition
from litestar_automation.engine.nodes import NODE_HANDLERS, RunState, execute_node
from litestar_automation.engine.orchestrator import ALLOWED_STATUS_CHANGES, ExecutionOrchestrator

__all__ = [
    "ALLOWED_STATUS_CHANGES",
    "NODE_HANDLERS",
    "ExecutionOrchestrator",
    "IsolatedExecutor",
    "RunState",
    "WorkflowGraph",
    "execute_node",
    "run_workflow",
    "validate_definition",
]
