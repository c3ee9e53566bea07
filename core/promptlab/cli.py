"""
Command-line interface for promptlab.

Usage:
    promptlab validate workflow.json
    promptlab run workflow.json --prompts prompts.json --models models.json \\
        --input '{"topic": "oceans"}'
    promptlab run workflow.json --prompts prompts.json --mock "canned text"
    promptlab batch workflow.json --prompts prompts.json --models models.json \\
        --cases cases.json
    promptlab logs <version_id> --store ./runs

``workflow.json`` is either a bare graph document (nodes/edges) or a prompt
version of type "workflow" whose content holds the graph.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import mimetypes
import sys
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from promptlab.errors import PromptLabError
from promptlab.llm.provider import GenerationService
from promptlab.observability.logging import configure_logging
from promptlab.schemas.prompt import Attachment, LLMConfig, PromptVersion
from promptlab.storage.run_log_store import RunLogStore
from promptlab.workflow.batch import TestCase, run_batch
from promptlab.workflow.executor import WorkflowExecutor
from promptlab.workflow.graph import WorkflowGraph
from promptlab.workflow.run_log import NodeStatus, RunLog, RunStatus

_PROMPTS = TypeAdapter(list[PromptVersion])
_MODELS = TypeAdapter(list[LLMConfig])
_CASES = TypeAdapter(list[TestCase])


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------


def _read_json(path: str) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise PromptLabError(f"Cannot read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise PromptLabError(f"{path} is not valid JSON: {e}") from e


def load_workflow(path: str) -> tuple[WorkflowGraph, str]:
    """Load a graph and the id runs of it are stored under."""
    data = _read_json(path)
    if isinstance(data, dict) and data.get("type") == "workflow" and "content" in data:
        version = PromptVersion.model_validate(data)
        return WorkflowGraph.from_version(version), version.id
    return WorkflowGraph.from_json(json.dumps(data)), Path(path).stem


def _load_list(path: str | None, adapter: TypeAdapter) -> list:
    if not path:
        return []
    try:
        return adapter.validate_python(_read_json(path))
    except ValidationError as e:
        raise PromptLabError(f"{path}: {e}") from e


def load_attachment(path: str) -> Attachment:
    """Read a file into a base64 data URI attachment."""
    file_path = Path(path)
    mime_type = mimetypes.guess_type(file_path.name)[0] or "text/plain"
    kind = mime_type.split("/", 1)[0]
    if kind not in ("image", "audio", "video"):
        kind = "text"
    try:
        encoded = base64.b64encode(file_path.read_bytes()).decode("ascii")
    except OSError as e:
        raise PromptLabError(f"Cannot read attachment {path}: {e}") from e
    return Attachment(
        id=file_path.name,
        name=file_path.name,
        type=kind,
        mime_type=mime_type,
        data=f"data:{mime_type};base64,{encoded}",
    )


def _parse_inputs(raw: str | None) -> dict[str, str]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PromptLabError(f"--input is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise PromptLabError("--input must be a JSON object")
    return {str(k): str(v) for k, v in data.items()}


def _build_generation(args: argparse.Namespace) -> GenerationService:
    if args.mock is not None:
        from promptlab.llm.mock import MockGenerationService

        return MockGenerationService(default=args.mock)
    from promptlab.llm.litellm import LiteLLMGenerationService

    return LiteLLMGenerationService()


def _print_status(node_id: str, status: NodeStatus, output: str | None) -> None:
    suffix = f": {output}" if status == NodeStatus.ERROR and output else ""
    print(f"  [{status}] {node_id}{suffix}", file=sys.stderr)


def _print_log(log: RunLog) -> None:
    print(json.dumps(log.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_validate(args: argparse.Namespace) -> int:
    graph, _ = load_workflow(args.workflow)
    problems = graph.validate_structure()
    for problem in problems:
        print(f"⚠ {problem}")
    if not problems:
        print(f"✓ {len(graph.nodes)} node(s), {len(graph.edges)} edge(s)")
    return 1 if problems else 0


def cmd_run(args: argparse.Namespace) -> int:
    graph, workflow_id = load_workflow(args.workflow)
    executor = WorkflowExecutor(generation=_build_generation(args))
    log = asyncio.run(
        executor.run_graph(
            graph,
            _parse_inputs(args.input),
            attachments=[load_attachment(p) for p in args.attach],
            prompts=_load_list(args.prompts, _PROMPTS),
            models=_load_list(args.models, _MODELS),
            on_node_status=None if args.quiet else _print_status,
            workflow_id=workflow_id,
        )
    )
    if args.save:
        path = RunLogStore(Path(args.save)).append_sync(workflow_id, log)
        print(f"Saved run {log.id} to {path}", file=sys.stderr)

    if args.json:
        _print_log(log)
    elif log.status == RunStatus.SUCCESS:
        final = log.final_output
        print(final if final is not None else json.dumps(log.outputs, ensure_ascii=False))
    else:
        failed = log.failed_step
        print(f"Workflow failed at {failed.node_id}: {failed.output}" if failed else "Failed")
    return 0 if log.status == RunStatus.SUCCESS else 1


def cmd_batch(args: argparse.Namespace) -> int:
    graph, workflow_id = load_workflow(args.workflow)
    cases = _load_list(args.cases, _CASES)
    executor = WorkflowExecutor(generation=_build_generation(args))

    def on_progress(done: int, total: int) -> None:
        if not args.quiet:
            print(f"  {done}/{total}", file=sys.stderr)

    results = asyncio.run(
        run_batch(
            executor,
            graph,
            cases,
            prompts=_load_list(args.prompts, _PROMPTS),
            models=_load_list(args.models, _MODELS),
            concurrency=args.concurrency,
            on_progress=on_progress,
        )
    )
    if args.save:
        store = RunLogStore(Path(args.save))
        for result in results:
            if result.run_log is not None:
                store.append_sync(workflow_id, result.run_log)

    print(
        json.dumps(
            [r.model_dump(mode="json", by_alias=True, exclude={"run_log"}) for r in results],
            indent=2,
            ensure_ascii=False,
        )
    )
    return 0 if all(r.status == RunStatus.SUCCESS for r in results) else 1


def cmd_logs(args: argparse.Namespace) -> int:
    store = RunLogStore(Path(args.store))
    logs = asyncio.run(store.list_logs(args.version_id, status=args.status, limit=args.limit))
    if not logs:
        print(f"No runs stored for {args.version_id}")
        return 0
    for log in logs:
        final = log.final_output or ""
        preview = final[:60] + ("..." if len(final) > 60 else "")
        print(
            f"{log.id}  {log.status:<7}  {log.duration_ms:>6}ms  "
            f"{log.total_tokens:>6} tok  {preview}"
        )
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("workflow", help="Graph JSON or workflow prompt version JSON")
    parser.add_argument("--prompts", help="JSON list of prompt versions")
    parser.add_argument("--models", help="JSON list of model configs")
    parser.add_argument("--mock", metavar="TEXT", help="Answer every llm node with TEXT offline")
    parser.add_argument("--save", metavar="DIR", help="Append run logs to a store at DIR")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress progress output")


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    validate_parser = subparsers.add_parser("validate", help="Check a workflow graph")
    validate_parser.add_argument("workflow", help="Graph JSON or workflow prompt version JSON")
    validate_parser.set_defaults(func=cmd_validate)

    run_parser = subparsers.add_parser("run", help="Run a workflow once")
    _add_run_arguments(run_parser)
    run_parser.add_argument("--input", "-i", help="Initial inputs as a JSON object")
    run_parser.add_argument(
        "--attach", action="append", default=[], metavar="FILE", help="Attach a file (repeatable)"
    )
    run_parser.add_argument("--json", action="store_true", help="Print the full run log")
    run_parser.set_defaults(func=cmd_run)

    batch_parser = subparsers.add_parser("batch", help="Run a workflow over test cases")
    _add_run_arguments(batch_parser)
    batch_parser.add_argument("--cases", required=True, help="JSON list of test cases")
    batch_parser.add_argument("--concurrency", type=int, help="Simultaneous runs")
    batch_parser.set_defaults(func=cmd_batch)

    logs_parser = subparsers.add_parser("logs", help="List stored runs of a workflow")
    logs_parser.add_argument("version_id", help="Workflow id the runs were saved under")
    logs_parser.add_argument("--store", required=True, metavar="DIR", help="Run log store")
    logs_parser.add_argument("--status", default="", choices=["", "success", "error"])
    logs_parser.add_argument("--limit", type=int, default=20)
    logs_parser.set_defaults(func=cmd_logs)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promptlab",
        description="promptlab - Run and test prompt workflows",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    parser.add_argument(
        "--log-format", default="auto", choices=["auto", "human", "json"], help="Log format"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)
    try:
        return args.func(args)
    except PromptLabError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
