"""Tests for loading and checking workflow graph documents."""

import json

import pytest

from promptlab.errors import GraphLoadError
from promptlab.schemas.prompt import ChatMessage, PromptVersion
from promptlab.workflow.graph import (
    Edge,
    EntryNode,
    ExitNode,
    GenerateNode,
    WorkflowGraph,
    find_edge,
    parse_node,
    required_variables,
)

EDITOR_DOCUMENT = {
    "nodes": [
        {
            "id": "start",
            "type": "start",
            "name": "Start",
            "x": 0,
            "y": 0,
            "data": {"globalInputs": [{"name": "topic", "type": "string"}]},
        },
        {
            "id": "g1",
            "type": "llm",
            "name": "Summarize",
            "x": 200,
            "y": 0,
            "data": {
                "projectId": "p1",
                "versionId": "v1",
                "includeSystemPrompt": False,
                "outputVariableName": "summary",
            },
        },
        {
            "id": "end",
            "type": "end",
            "name": "End",
            "data": {"outputTemplate": "Result: {{summary}}"},
        },
    ],
    "edges": [
        {"id": "e1", "source": "start", "target": "g1", "targetHandle": "topic"},
        {
            "id": "e2",
            "source": "g1",
            "sourceHandle": "output",
            "target": "end",
            "targetHandle": "summary",
        },
    ],
    "zoom": 1.5,
    "pan": {"x": 10, "y": 20},
}


class TestLoading:
    def test_editor_document_round_trip(self):
        graph = WorkflowGraph.from_json(json.dumps(EDITOR_DOCUMENT))

        assert [type(n) for n in graph.nodes] == [EntryNode, GenerateNode, ExitNode]
        assert graph.entry_node.input_names == ["topic"]
        g1 = graph.get_node("g1")
        assert g1.version_id == "v1"
        assert g1.include_system_prompt is False
        assert g1.output_variable_name == "summary"
        assert graph.exit_node.output_template == "Result: {{summary}}"
        assert graph.edges[1].target_handle == "summary"
        assert graph.zoom == 1.5

    def test_invalid_json(self):
        with pytest.raises(GraphLoadError, match="Invalid Graph JSON"):
            WorkflowGraph.from_json("{not json")

    def test_non_object_json(self):
        with pytest.raises(GraphLoadError):
            WorkflowGraph.from_json("[1, 2]")

    def test_unknown_node_type(self):
        doc = {"nodes": [{"id": "x", "type": "tool"}], "edges": []}
        with pytest.raises(GraphLoadError):
            WorkflowGraph.from_json(json.dumps(doc))

    def test_from_version(self):
        version = PromptVersion(id="wf", type="workflow", content=json.dumps(EDITOR_DOCUMENT))
        assert len(WorkflowGraph.from_version(version).nodes) == 3

    def test_from_version_rejects_text_prompts(self):
        with pytest.raises(GraphLoadError):
            WorkflowGraph.from_version(PromptVersion(id="v1", content="{}"))

    def test_parse_node_accepts_flat_fields(self):
        node = parse_node({"id": "g", "type": "llm", "user_prompt_override": "Hi {{x}}"})
        assert isinstance(node, GenerateNode)
        assert node.user_prompt_override == "Hi {{x}}"


class TestValidateStructure:
    def test_valid_graph_has_no_problems(self):
        assert WorkflowGraph.from_json(json.dumps(EDITOR_DOCUMENT)).validate_structure() == []

    def test_reports_problems(self):
        graph = WorkflowGraph(
            nodes=[GenerateNode(id="a"), GenerateNode(id="a"), ExitNode(id="end")],
            edges=[
                Edge(id="e1", source="ghost", target="end", target_handle="x"),
                Edge(id="e2", source="a", target="end", target_handle="x"),
            ],
        )
        problems = graph.validate_structure()

        assert any("Duplicate node ID" in p for p in problems)
        assert any("no start node" in p for p in problems)
        assert any("missing source 'ghost'" in p for p in problems)
        assert any("more than one incoming edge" in p for p in problems)

    def test_multiple_start_nodes(self):
        graph = WorkflowGraph(nodes=[EntryNode(id="s1"), EntryNode(id="s2")])
        assert any("2 start nodes" in p for p in graph.validate_structure())


class TestRequiredVariables:
    def test_override_wins_over_version(self):
        node = GenerateNode(id="g", version_id="v1", user_prompt_override="{{a}}")
        prompts = {"v1": PromptVersion(id="v1", content="{{b}}")}
        assert required_variables(node, prompts) == ["a"]

    def test_version_content_and_messages(self):
        version = PromptVersion(
            id="v1",
            content="{{a}}",
            messages=[ChatMessage(content="{{b}}"), ChatMessage(role="model", content="{{a}}")],
        )
        node = GenerateNode(id="g", version_id="v1")
        assert required_variables(node, {"v1": version}) == ["a", "b"]

    def test_missing_version_needs_nothing(self):
        assert required_variables(GenerateNode(id="g", version_id="nope"), {}) == []

    def test_exit_and_entry(self):
        assert required_variables(ExitNode(id="e", output_template="{{x}} {{y}}"), {}) == ["x", "y"]
        assert required_variables(EntryNode(id="s"), {}) == []


def test_find_edge_returns_first_match():
    edges = [
        Edge(id="e1", source="a", target="t", target_handle="x"),
        Edge(id="e2", source="b", target="t", target_handle="x"),
    ]
    assert find_edge(edges, "t", "x").id == "e1"
    assert find_edge(edges, "t", "y") is None
