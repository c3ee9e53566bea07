"""
Run Log - The auditable record of one workflow execution.

One RunStep per executed node, in execution order, plus the run's final
outputs. The RunLogBuilder accumulates steps while the executor runs and
produces a frozen RunLog when the run finishes; callers persist it if they
want to (see ``promptlab.storage.run_log_store``).

Serialized with ``by_alias=True`` the log matches the workbench's stored
shape (``nodeId``, ``nodeName``, ``latency`` ...).
"""

from __future__ import annotations

import time
import uuid
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from promptlab.schemas.prompt import CAMEL_CASE_CONFIG


class RunStatus(StrEnum):
    """Overall outcome of a run."""

    SUCCESS = "success"
    ERROR = "error"


class NodeStatus(StrEnum):
    """Per-node lifecycle reported to status callbacks."""

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class RunStep(BaseModel):
    """The outcome of one executed node."""

    model_config = {**CAMEL_CASE_CONFIG, "frozen": True}

    node_id: str
    node_name: str = ""
    node_type: str = ""  # "start"|"llm"|"end"
    status: NodeStatus
    output: str = ""  # node output, or the error message on failure
    latency_ms: int = Field(default=0, alias="latency")
    error_kind: str | None = None  # "unresolved_reference"|"generation_failed"|"cancelled"
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0


class RunLog(BaseModel):
    """A finished workflow run. Immutable once returned by the executor."""

    model_config = {**CAMEL_CASE_CONFIG, "frozen": True}

    id: str
    timestamp: int  # epoch milliseconds
    status: RunStatus = RunStatus.SUCCESS
    inputs: dict[str, str] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)
    steps: list[RunStep] = Field(default_factory=list)
    unreached_nodes: list[str] = Field(default_factory=list)
    total_tokens: int = 0
    duration_ms: int = 0

    @property
    def final_output(self) -> str | None:
        return self.outputs.get("final")

    @property
    def failed_step(self) -> RunStep | None:
        return next((s for s in self.steps if s.status == NodeStatus.ERROR), None)


class RunLogBuilder:
    """Accumulates steps for a single run.

    Not shared between runs: every executor invocation creates its own.
    """

    def __init__(self, inputs: dict[str, str], run_id: str | None = None) -> None:
        self._started = time.monotonic()
        self.timestamp = int(time.time() * 1000)
        self.run_id = run_id or f"log-{self.timestamp}-{uuid.uuid4().hex[:8]}"
        self._inputs = dict(inputs)
        self._outputs: dict[str, Any] = {}
        self._steps: list[RunStep] = []
        self._status = RunStatus.SUCCESS

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def inputs(self) -> dict[str, str]:
        return dict(self._inputs)

    @property
    def steps(self) -> list[RunStep]:
        return list(self._steps)

    def add_step(self, step: RunStep) -> None:
        self._steps.append(step)
        if step.status == NodeStatus.ERROR:
            self._status = RunStatus.ERROR

    def set_output(self, key: str, value: Any) -> None:
        self._outputs[key] = value

    def build(self, unreached_nodes: list[str] | None = None) -> RunLog:
        """Freeze the accumulated state into a RunLog."""
        return RunLog(
            id=self.run_id,
            timestamp=self.timestamp,
            status=self._status,
            inputs=dict(self._inputs),
            outputs=dict(self._outputs),
            steps=list(self._steps),
            unreached_nodes=list(unreached_nodes or []),
            total_tokens=sum(s.input_tokens + s.output_tokens for s in self._steps),
            duration_ms=int((time.monotonic() - self._started) * 1000),
        )
