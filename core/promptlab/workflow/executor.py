"""
Workflow Executor - Runs prompt workflows.

The executor:
1. Seeds an ExecutionContext with the run's initial inputs
2. Logs the start node immediately
3. Repeatedly picks the first pending node whose inputs are all resolvable
   (present in the context, or bound by an edge to an already processed node)
4. Executes it: llm nodes call the generation service, the end node renders
   the final output
5. Stops on the first failing node, or when nothing else is ready
6. Returns the RunLog

Readiness depends on value presence, not only on edges: an input supplied by
the caller satisfies a node even when an edge also points at it. Nodes that
never become ready are left out of the log (see ``RunLog.unreached_nodes``);
that alone does not make the run fail.

Example:
    executor = WorkflowExecutor(generation=LiteLLMGenerationService())
    log = await executor.run(
        nodes=graph.nodes,
        edges=graph.edges,
        initial_inputs={"topic": "oceans"},
        prompts=prompt_versions,
        models=model_configs,
    )
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TypeVar

from promptlab.config import get_default_generation_config, get_max_iterations
from promptlab.errors import (
    GenerationError,
    RunCancelledError,
    UnresolvedReferenceError,
    WorkflowError,
)
from promptlab.llm.provider import GenerationRequest, GenerationResult, GenerationService
from promptlab.observability.logging import set_trace_context, trace_context
from promptlab.schemas.prompt import (
    Attachment,
    GenerationConfig,
    LLMConfig,
    PromptVersion,
)
from promptlab.workflow.context import ExecutionContext
from promptlab.workflow.graph import (
    Edge,
    EntryNode,
    ExitNode,
    GenerateNode,
    WorkflowGraph,
    find_edge,
    required_variables,
)
from promptlab.workflow.run_log import NodeStatus, RunLog, RunLogBuilder, RunStatus, RunStep
from promptlab.workflow.templates import render_template

logger = logging.getLogger(__name__)

Node = EntryNode | GenerateNode | ExitNode

# on_node_status(node_id, status, output): called synchronously with RUNNING
# before a node executes and SUCCESS/ERROR after it finishes
NodeStatusCallback = Callable[[str, NodeStatus, str | None], None]

_T = TypeVar("_T", PromptVersion, LLMConfig)


def index_by_id(items: Mapping[str, _T] | Iterable[_T] | None) -> Mapping[str, _T]:
    """Accept either an id-keyed mapping or a sequence of records."""
    if items is None:
        return {}
    if isinstance(items, Mapping):
        return items
    return {item.id: item for item in items}


@dataclass
class NodeOutcome:
    """What a successfully executed node produced."""

    output: str
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0


class _RunState:
    """Mutable state of one run. Never shared between runs."""

    def __init__(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        initial_inputs: Mapping[str, str],
        attachments: list[Attachment],
        prompts: Mapping[str, PromptVersion],
        models: Mapping[str, LLMConfig],
    ):
        self.nodes = nodes
        self.edges = list(edges)
        self.attachments = attachments
        self.prompts = prompts
        self.models = models
        self.context = ExecutionContext(initial_inputs)
        self.log = RunLogBuilder(dict(initial_inputs))
        self.processed: set[str] = set()
        self.nodes_by_id = {node.id: node for node in nodes}


class WorkflowExecutor:
    """
    Executes prompt workflows one node at a time.

    The executor holds no per-run state, so one instance can serve many
    concurrent runs (see ``promptlab.workflow.batch``).
    """

    def __init__(
        self,
        generation: GenerationService,
        max_iterations: int | None = None,
        default_generation_config: GenerationConfig | None = None,
    ):
        """
        Args:
            generation: Backend used by llm nodes
            max_iterations: Scheduler ceiling per run (default from configuration)
            default_generation_config: Sampling parameters for prompt versions
                that carry none
        """
        self.generation = generation
        if max_iterations is None:
            max_iterations = get_max_iterations()
        self.max_iterations = max_iterations
        self.default_generation_config = (
            default_generation_config or get_default_generation_config()
        )

    async def run(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        initial_inputs: Mapping[str, str],
        attachments: list[Attachment] | None = None,
        prompts: Mapping[str, PromptVersion] | Iterable[PromptVersion] | None = None,
        models: Mapping[str, LLMConfig] | Iterable[LLMConfig] | None = None,
        on_node_status: NodeStatusCallback | None = None,
        cancel_event: asyncio.Event | None = None,
        workflow_id: str = "",
    ) -> RunLog:
        """
        Execute a workflow graph.

        Args:
            nodes: Graph nodes; list order is the tie-break between ready nodes
            edges: Graph edges
            initial_inputs: Values for the start node's declared inputs
            attachments: Files forwarded to every llm node
            prompts: Prompt versions referenced by llm nodes
            models: Model configs referenced by prompt versions; the first one
                is the fallback for unknown references
            on_node_status: Optional live progress callback
            cancel_event: Set it to abort the in-flight generation call
            workflow_id: Included in log context only

        Returns:
            RunLog; node failures are reported through its status, not raised
        """
        state = _RunState(
            nodes=nodes,
            edges=edges,
            initial_inputs=initial_inputs,
            attachments=list(attachments or []),
            prompts=index_by_id(prompts),
            models=index_by_id(models),
        )
        token = trace_context.set(
            {**(trace_context.get() or {}), "run_id": state.log.run_id, "workflow_id": workflow_id}
        )
        try:
            return await self._run(state, on_node_status, cancel_event)
        finally:
            trace_context.reset(token)

    async def run_graph(
        self,
        graph: WorkflowGraph,
        initial_inputs: Mapping[str, str],
        **kwargs,
    ) -> RunLog:
        """Run a WorkflowGraph document; keyword arguments as for ``run``."""
        return await self.run(graph.nodes, graph.edges, initial_inputs, **kwargs)

    async def _run(
        self,
        state: _RunState,
        on_node_status: NodeStatusCallback | None,
        cancel_event: asyncio.Event | None,
    ) -> RunLog:
        graph = WorkflowGraph(nodes=list(state.nodes), edges=state.edges)
        for problem in graph.validate_structure():
            logger.warning(f"Workflow graph: {problem}")

        entry = next((n for n in state.nodes if isinstance(n, EntryNode)), None)
        if entry is not None:
            self._execute_entry(entry, state, on_node_status)

        pending: list[Node] = [n for n in state.nodes if not isinstance(n, EntryNode)]
        logger.info(f"▶ Workflow run started with {len(pending)} pending node(s)")

        iterations = 0
        while pending:
            if iterations >= self.max_iterations:
                logger.warning(f"Iteration limit ({self.max_iterations}) reached; stopping")
                break
            iterations += 1

            node = self._next_ready(pending, state)
            if node is None:
                break
            pending.remove(node)

            if not await self._execute_node(node, state, on_node_status, cancel_event):
                break
            state.processed.add(node.id)

        unreached = [n.id for n in pending]
        if unreached and state.log.status == RunStatus.SUCCESS:
            logger.warning(f"⚠ {len(unreached)} node(s) never became ready: {unreached}")

        run_log = state.log.build(unreached_nodes=unreached)
        logger.info(
            f"■ Workflow run finished: {run_log.status} ({len(run_log.steps)} step(s))",
            extra={"latency_ms": run_log.duration_ms, "tokens_used": run_log.total_tokens},
        )
        return run_log

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _is_ready(self, node: Node, state: _RunState) -> bool:
        for name in required_variables(node, state.prompts):
            if state.context.has(name):
                continue
            edge = find_edge(state.edges, node.id, name)
            if edge is None or edge.source not in state.processed:
                return False
        return True

    def _next_ready(self, pending: list[Node], state: _RunState) -> Node | None:
        """First pending node, in list order, whose inputs are all resolvable."""
        for node in pending:
            if self._is_ready(node, state):
                return node
        return None

    # ------------------------------------------------------------------
    # Input resolution
    # ------------------------------------------------------------------

    def _resolve_input(self, node: Node, name: str, state: _RunState) -> str | None:
        """Value for one placeholder; None leaves the placeholder verbatim.

        Context values win. Otherwise the bound edge's source supplies it:
        llm targets prefer the source's named output, end targets read its
        raw output. A source that produced nothing yields "".
        """
        value = state.context.get(name)
        if value is not None:
            return value

        edge = find_edge(state.edges, node.id, name)
        if edge is None:
            return None
        source = state.nodes_by_id.get(edge.source)
        if source is None:
            return None

        # The end node always reads the source's own text
        if isinstance(node, ExitNode) or isinstance(source, EntryNode):
            return state.context.get_raw(source.id) or ""
        if isinstance(source, GenerateNode) and source.output_variable_name:
            named = state.context.get(source.output_variable_name)
            if named:
                return named
        return state.context.get_raw(source.id) or ""

    def _resolve_inputs(self, node: Node, state: _RunState) -> dict[str, str]:
        values = {}
        for name in required_variables(node, state.prompts):
            value = self._resolve_input(node, name, state)
            if value is not None:
                values[name] = value
        return values

    # ------------------------------------------------------------------
    # Node execution
    # ------------------------------------------------------------------

    def _report(
        self,
        callback: NodeStatusCallback | None,
        node_id: str,
        status: NodeStatus,
        output: str | None = None,
    ) -> None:
        if callback is None:
            return
        try:
            callback(node_id, status, output)
        except Exception:
            logger.warning(f"Status callback failed for node {node_id}", exc_info=True)

    def _execute_entry(
        self,
        node: EntryNode,
        state: _RunState,
        on_node_status: NodeStatusCallback | None,
    ) -> None:
        snapshot = json.dumps(state.log.inputs, ensure_ascii=False, separators=(",", ":"))
        missing = [name for name in node.input_names if not state.context.has(name)]
        if missing:
            logger.warning(f"Start node inputs not supplied: {missing}", extra={"node_id": node.id})

        self._report(on_node_status, node.id, NodeStatus.SUCCESS, snapshot)
        state.log.add_step(
            RunStep(
                node_id=node.id,
                node_name=node.name,
                node_type=node.type,
                status=NodeStatus.SUCCESS,
                output=snapshot,
                latency_ms=0,
            )
        )
        state.processed.add(node.id)

    async def _execute_node(
        self,
        node: GenerateNode | ExitNode,
        state: _RunState,
        on_node_status: NodeStatusCallback | None,
        cancel_event: asyncio.Event | None,
    ) -> bool:
        """Run one node and log its step. Returns False if it failed."""
        set_trace_context(node_id=node.id)
        self._report(on_node_status, node.id, NodeStatus.RUNNING)
        logger.info(
            f"→ Executing {node.type} node '{node.name or node.id}'", extra={"node_id": node.id}
        )

        started = time.monotonic()
        try:
            match node:
                case GenerateNode():
                    outcome = await self._execute_generate(node, state, cancel_event)
                case ExitNode():
                    outcome = self._execute_exit(node, state)
                case _:
                    raise WorkflowError(f"Unsupported node type: {type(node).__name__}")
        except WorkflowError as e:
            self._record_failure(node, state, on_node_status, started, str(e), e.kind)
            return False
        except Exception as e:
            logger.exception(f"Internal error in node {node.id}", extra={"node_id": node.id})
            self._record_failure(node, state, on_node_status, started, str(e), "internal")
            return False

        latency_ms = int((time.monotonic() - started) * 1000)
        self._report(on_node_status, node.id, NodeStatus.SUCCESS, outcome.output)
        state.log.add_step(
            RunStep(
                node_id=node.id,
                node_name=node.name,
                node_type=node.type,
                status=NodeStatus.SUCCESS,
                output=outcome.output,
                latency_ms=latency_ms,
                model=outcome.model,
                input_tokens=outcome.input_tokens,
                output_tokens=outcome.output_tokens,
            )
        )
        logger.info(
            f"✓ Node '{node.name or node.id}' succeeded",
            extra={
                "node_id": node.id,
                "latency_ms": latency_ms,
                "tokens_used": outcome.input_tokens + outcome.output_tokens,
                "model": outcome.model,
            },
        )
        return True

    def _record_failure(
        self,
        node: Node,
        state: _RunState,
        on_node_status: NodeStatusCallback | None,
        started: float,
        message: str,
        kind: str,
    ) -> None:
        latency_ms = int((time.monotonic() - started) * 1000)
        self._report(on_node_status, node.id, NodeStatus.ERROR, message)
        state.log.add_step(
            RunStep(
                node_id=node.id,
                node_name=node.name,
                node_type=node.type,
                status=NodeStatus.ERROR,
                output=message,
                latency_ms=latency_ms,
                error_kind=kind,
            )
        )
        logger.error(
            f"✗ Node '{node.name or node.id}' failed ({kind}): {message}",
            extra={"node_id": node.id, "latency_ms": latency_ms},
        )

    def _select_model(self, version: PromptVersion, state: _RunState) -> LLMConfig:
        config = state.models.get(version.model)
        if config is not None:
            return config
        fallback = next(iter(state.models.values()), None)
        if fallback is None:
            raise UnresolvedReferenceError("No model configuration available")
        logger.warning(
            f"Model '{version.model}' of prompt version '{version.id}' not found; "
            f"falling back to '{fallback.id}'"
        )
        return fallback

    async def _execute_generate(
        self,
        node: GenerateNode,
        state: _RunState,
        cancel_event: asyncio.Event | None,
    ) -> NodeOutcome:
        values = self._resolve_inputs(node, state)

        version = state.prompts.get(node.version_id) if node.version_id else None
        if version is None:
            raise UnresolvedReferenceError("Ref version not found")

        request = GenerationRequest(
            model=self._select_model(version, state),
            system_instruction=version.system_instruction if node.include_system_prompt else "",
            config=version.config or self.default_generation_config,
            attachments=state.attachments,
        )
        if node.user_prompt_override:
            request.prompt = render_template(node.user_prompt_override, values)
        elif version.is_chat:
            request.messages = [
                m.model_copy(update={"content": render_template(m.content, values)})
                for m in version.messages
            ]
        else:
            request.prompt = render_template(version.content, values)

        try:
            result = await self._invoke(request, cancel_event)
        except WorkflowError:
            raise
        except Exception as e:
            raise GenerationError(str(e) or type(e).__name__) from e

        if node.output_variable_name:
            if state.context.has(node.output_variable_name):
                logger.warning(
                    f"Output variable '{node.output_variable_name}' is already set; "
                    "keeping the earlier value",
                    extra={"node_id": node.id},
                )
            else:
                state.context.set(node.output_variable_name, result.text)
        state.context.set_raw(node.id, result.text)

        return NodeOutcome(
            output=result.text,
            model=result.model or request.model.model_id,
            input_tokens=result.token_usage.input_tokens,
            output_tokens=result.token_usage.output_tokens,
        )

    async def _invoke(
        self,
        request: GenerationRequest,
        cancel_event: asyncio.Event | None,
    ) -> GenerationResult:
        """Call the generation service, racing it against ``cancel_event``."""
        if cancel_event is None:
            return await self.generation.generate(request)
        if cancel_event.is_set():
            raise RunCancelledError()

        generate_task = asyncio.ensure_future(self.generation.generate(request))
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {generate_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if generate_task in done:
                return generate_task.result()
            raise RunCancelledError()
        finally:
            for task in (generate_task, cancel_task):
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task

    def _execute_exit(self, node: ExitNode, state: _RunState) -> NodeOutcome:
        rendered = render_template(node.output_template, self._resolve_inputs(node, state))
        state.log.set_output("final", rendered)
        return NodeOutcome(output=rendered)


async def run_workflow(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    initial_inputs: Mapping[str, str],
    attachments: list[Attachment] | None = None,
    prompts: Mapping[str, PromptVersion] | Iterable[PromptVersion] | None = None,
    models: Mapping[str, LLMConfig] | Iterable[LLMConfig] | None = None,
    generation: GenerationService | None = None,
    on_node_status: NodeStatusCallback | None = None,
    cancel_event: asyncio.Event | None = None,
) -> RunLog:
    """Functional entry point: build an executor and run one workflow."""
    if generation is None:
        from promptlab.llm.litellm import LiteLLMGenerationService

        generation = LiteLLMGenerationService()
    executor = WorkflowExecutor(generation=generation)
    return await executor.run(
        nodes,
        edges,
        initial_inputs,
        attachments=attachments,
        prompts=prompts,
        models=models,
        on_node_status=on_node_status,
        cancel_event=cancel_event,
    )
