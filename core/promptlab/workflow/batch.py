"""
Batch testing - run one workflow against many test cases.

Each test case is an independent run with its own ExecutionContext and
RunLog; only the graph, prompts and model configs are shared, read-only.
At most ``concurrency`` runs are in flight at once.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping

from pydantic import BaseModel, Field

from promptlab.config import get_batch_concurrency
from promptlab.schemas.prompt import CAMEL_CASE_CONFIG, Attachment, LLMConfig, PromptVersion
from promptlab.workflow.executor import WorkflowExecutor
from promptlab.workflow.graph import WorkflowGraph
from promptlab.workflow.run_log import RunLog, RunStatus

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class TestCase(BaseModel):
    """One row of a test dataset."""

    __test__ = False  # keep pytest from collecting this class

    model_config = CAMEL_CASE_CONFIG

    id: str
    inputs: dict[str, str] = Field(default_factory=dict)
    attachments: list[Attachment] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Outcome of one test case."""

    model_config = CAMEL_CASE_CONFIG

    case_id: str
    status: RunStatus
    output: str = ""
    latency_ms: int = Field(default=0, alias="latency")
    tokens: int = 0
    error: str | None = None
    run_log: RunLog | None = None


def summarize_outputs(log: RunLog) -> str:
    """The final output, or every output as JSON when there is no final one."""
    final = log.outputs.get("final")
    if final is not None:
        return final
    return json.dumps(log.outputs, ensure_ascii=False)


async def run_batch(
    executor: WorkflowExecutor,
    graph: WorkflowGraph,
    cases: Iterable[TestCase],
    prompts: Mapping[str, PromptVersion] | Iterable[PromptVersion] | None = None,
    models: Mapping[str, LLMConfig] | Iterable[LLMConfig] | None = None,
    concurrency: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> list[BatchResult]:
    """
    Run ``graph`` once per test case.

    Args:
        executor: Shared executor; it keeps no per-run state
        graph: Workflow to test
        cases: Test cases; results come back in the same order
        prompts: Prompt versions referenced by the graph
        models: Model configs referenced by the prompt versions
        concurrency: Maximum simultaneous runs (default from configuration)
        on_progress: Called with (completed, total) after each case

    Returns:
        One BatchResult per case
    """
    cases = list(cases)
    if concurrency is None:
        concurrency = get_batch_concurrency()
    semaphore = asyncio.Semaphore(concurrency)
    total = len(cases)
    completed = 0

    # Materialize lookups once so every run sees the same mapping
    if prompts is not None and not isinstance(prompts, Mapping):
        prompts = {p.id: p for p in prompts}
    if models is not None and not isinstance(models, Mapping):
        models = {m.id: m for m in models}

    async def run_case(case: TestCase) -> BatchResult:
        nonlocal completed
        async with semaphore:
            started = time.monotonic()
            log = await executor.run_graph(
                graph,
                case.inputs,
                attachments=case.attachments,
                prompts=prompts,
                models=models,
            )
            latency_ms = int((time.monotonic() - started) * 1000)

        if log.status == RunStatus.ERROR:
            failed = log.failed_step
            if failed is not None:
                logger.info(f"Test case {case.id} failed at node {failed.node_id}: {failed.output}")
            result = BatchResult(
                case_id=case.id,
                status=RunStatus.ERROR,
                output="Error: Workflow Failed",
                latency_ms=latency_ms,
                tokens=log.total_tokens,
                error="Workflow Failed",
                run_log=log,
            )
        else:
            result = BatchResult(
                case_id=case.id,
                status=RunStatus.SUCCESS,
                output=summarize_outputs(log),
                latency_ms=latency_ms,
                tokens=log.total_tokens,
                run_log=log,
            )

        completed += 1
        if on_progress is not None:
            on_progress(completed, total)
        return result

    logger.info(f"Running batch of {total} test case(s) with concurrency {concurrency}")
    return list(await asyncio.gather(*(run_case(case) for case in cases)))
