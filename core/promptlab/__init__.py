"""
promptlab - run chains of prompt templates as workflows.

A workflow is a graph of a start node, llm nodes and an end node. The
executor resolves each node's template variables from the run context or
from upstream nodes, calls the generation service, and records every step
in a RunLog.
"""

from promptlab.errors import (
    ConfigError,
    GenerationError,
    GraphLoadError,
    PromptLabError,
    RunCancelledError,
    UnresolvedReferenceError,
    WorkflowError,
)
from promptlab.schemas.prompt import Attachment, GenerationConfig, LLMConfig, PromptVersion
from promptlab.workflow.executor import WorkflowExecutor, run_workflow
from promptlab.workflow.graph import WorkflowGraph
from promptlab.workflow.run_log import NodeStatus, RunLog, RunStatus, RunStep

__all__ = [
    "Attachment",
    "ConfigError",
    "GenerationConfig",
    "GenerationError",
    "GraphLoadError",
    "LLMConfig",
    "NodeStatus",
    "PromptLabError",
    "PromptVersion",
    "RunCancelledError",
    "RunLog",
    "RunStatus",
    "RunStep",
    "UnresolvedReferenceError",
    "WorkflowError",
    "WorkflowExecutor",
    "WorkflowGraph",
    "run_workflow",
]
