"""Workflow graphs, the executor and batch testing."""

from promptlab.workflow.batch import BatchResult, TestCase, run_batch
from promptlab.workflow.context import ExecutionContext
from promptlab.workflow.executor import NodeStatusCallback, WorkflowExecutor, run_workflow
from promptlab.workflow.graph import (
    Edge,
    EntryNode,
    ExitNode,
    GenerateNode,
    InputSpec,
    WorkflowGraph,
    WorkflowNode,
)
from promptlab.workflow.run_log import NodeStatus, RunLog, RunLogBuilder, RunStatus, RunStep
from promptlab.workflow.templates import extract_variables, render_template

__all__ = [
    "BatchResult",
    "Edge",
    "EntryNode",
    "ExecutionContext",
    "ExitNode",
    "GenerateNode",
    "InputSpec",
    "NodeStatus",
    "NodeStatusCallback",
    "RunLog",
    "RunLogBuilder",
    "RunStatus",
    "RunStep",
    "TestCase",
    "WorkflowExecutor",
    "WorkflowGraph",
    "WorkflowNode",
    "extract_variables",
    "render_template",
    "run_batch",
    "run_workflow",
]
