"""
Workflow Graph - Nodes and edges of a user-authored prompt workflow.

A workflow has three kinds of nodes:
- start: publishes the run's initial inputs (always ready)
- llm:   renders a prompt version with its inputs and calls a model
- end:   renders the output template that becomes the run's final output

Edges bind a source node's output to one named input ("target handle") of
the target node. Graph documents come from the visual editor, so node
configuration arrives nested under ``data`` with camelCase keys:

    {"id": "g1", "type": "llm", "name": "Summarize", "x": 120, "y": 40,
     "data": {"versionId": "v-3", "outputVariableName": "summary"}}

Layout fields are ignored. Nodes can also be built directly in Python:

    GenerateNode(id="g1", name="Summarize", version_id="v-3",
                 output_variable_name="summary")
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator

from promptlab.errors import GraphLoadError
from promptlab.schemas.prompt import CAMEL_CASE_CONFIG, PromptVersion
from promptlab.workflow.templates import extract_all, extract_variables


class InputSpec(BaseModel):
    """A declared input of the start node."""

    model_config = CAMEL_CASE_CONFIG

    name: str
    type: Literal["string", "file"] = "string"


class _NodeBase(BaseModel):
    model_config = CAMEL_CASE_CONFIG

    id: str
    name: str = ""

    @model_validator(mode="before")
    @classmethod
    def _flatten_editor_data(cls, value: Any) -> Any:
        """Lift the editor's nested ``data`` block to top-level fields."""
        if isinstance(value, Mapping) and isinstance(value.get("data"), Mapping):
            merged = {k: v for k, v in value.items() if k != "data"}
            for key, item in value["data"].items():
                merged.setdefault(key, item)
            return merged
        return value


class EntryNode(_NodeBase):
    """The start node; its declared inputs are supplied by the caller."""

    type: Literal["start"] = "start"
    global_inputs: list[InputSpec] = Field(default_factory=list)

    @property
    def input_names(self) -> list[str]:
        return [spec.name for spec in self.global_inputs]


class GenerateNode(_NodeBase):
    """A model call rendered from a referenced prompt version."""

    type: Literal["llm"] = "llm"
    project_id: str | None = None
    version_id: str | None = None
    include_system_prompt: bool = True
    user_prompt_override: str | None = None
    output_variable_name: str | None = None


class ExitNode(_NodeBase):
    """The end node; renders the run's final output."""

    type: Literal["end"] = "end"
    output_template: str = ""


WorkflowNode = Annotated[EntryNode | GenerateNode | ExitNode, Field(discriminator="type")]

_node_adapter: TypeAdapter[EntryNode | GenerateNode | ExitNode] = TypeAdapter(WorkflowNode)


def parse_node(data: Any) -> EntryNode | GenerateNode | ExitNode:
    """Validate one node document into its concrete node class."""
    return _node_adapter.validate_python(data)


class Edge(BaseModel):
    """Binds the output of ``source`` to input ``target_handle`` of ``target``."""

    model_config = CAMEL_CASE_CONFIG

    id: str = ""
    source: str = Field(description="Source node ID")
    source_handle: str = "output"
    target: str = Field(description="Target node ID")
    target_handle: str = Field(description="Input variable name on the target node")


def find_edge(edges: list[Edge], target: str, handle: str) -> Edge | None:
    """First edge supplying ``handle`` on ``target``.

    Editors should keep at most one supplier per input; if a graph carries
    more, the earliest edge wins.
    """
    for edge in edges:
        if edge.target == target and edge.target_handle == handle:
            return edge
    return None


def required_variables(
    node: EntryNode | GenerateNode | ExitNode,
    prompts: Mapping[str, PromptVersion],
) -> list[str]:
    """Placeholder names a node needs before it can run.

    For llm nodes this is the inline override if one is set, otherwise the
    referenced prompt's content plus every chat message. A dangling prompt
    reference needs nothing, so the node is scheduled and fails loudly.
    """
    if isinstance(node, GenerateNode):
        if node.user_prompt_override:
            return extract_variables(node.user_prompt_override)
        version = prompts.get(node.version_id) if node.version_id else None
        if version is None:
            return []
        return extract_all([version.content, *(m.content for m in version.messages)])
    if isinstance(node, ExitNode):
        return extract_variables(node.output_template)
    return []


class WorkflowGraph(BaseModel):
    """A complete workflow document as saved by the editor."""

    model_config = CAMEL_CASE_CONFIG

    nodes: list[WorkflowNode] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    zoom: float = 1.0
    pan: dict[str, float] = Field(default_factory=lambda: {"x": 0.0, "y": 0.0})

    @classmethod
    def from_json(cls, raw: str) -> WorkflowGraph:
        """Parse a serialized graph; raises GraphLoadError on bad input."""
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise GraphLoadError("Invalid Graph JSON") from e
        if not isinstance(data, dict):
            raise GraphLoadError("Invalid Graph JSON")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise GraphLoadError(f"Invalid workflow graph: {e}") from e

    @classmethod
    def from_version(cls, version: PromptVersion) -> WorkflowGraph:
        """Load the graph stored in a workflow prompt version's content."""
        if version.type != "workflow":
            raise GraphLoadError(f"Prompt version '{version.id}' is not a workflow")
        return cls.from_json(version.content)

    def get_node(self, node_id: str) -> EntryNode | GenerateNode | ExitNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    @property
    def entry_node(self) -> EntryNode | None:
        return next((n for n in self.nodes if isinstance(n, EntryNode)), None)

    @property
    def exit_node(self) -> ExitNode | None:
        return next((n for n in self.nodes if isinstance(n, ExitNode)), None)

    def validate_structure(self) -> list[str]:
        """Structural problems the editor should have prevented.

        The executor tolerates all of these; they are reported for tooling.
        """
        errors = []

        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen.add(node.id)

        entries = [n for n in self.nodes if isinstance(n, EntryNode)]
        if not entries:
            errors.append("Workflow has no start node")
        elif len(entries) > 1:
            errors.append(f"Workflow has {len(entries)} start nodes; only the first is used")

        bound: set[tuple[str, str]] = set()
        for edge in self.edges:
            if self.get_node(edge.source) is None:
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if self.get_node(edge.target) is None:
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")
            key = (edge.target, edge.target_handle)
            if key in bound:
                errors.append(
                    f"Input '{edge.target_handle}' of node '{edge.target}' has more than "
                    "one incoming edge; the first one is used"
                )
            bound.add(key)

        return errors
