"""Tests for the promptlab command line."""

import json
import logging

import pytest

from promptlab.cli import load_attachment, load_workflow, main
from promptlab.errors import GraphLoadError

GRAPH = {
    "nodes": [
        {"id": "start", "type": "start", "data": {"globalInputs": [{"name": "topic"}]}},
        {
            "id": "g1",
            "type": "llm",
            "data": {"versionId": "v1", "outputVariableName": "summary"},
        },
        {"id": "end", "type": "end", "data": {"outputTemplate": "Result: {{summary}}"}},
    ],
    "edges": [{"id": "e1", "source": "g1", "target": "end", "targetHandle": "summary"}],
}
PROMPTS = [{"id": "v1", "content": "Summarize: {{topic}}", "model": "m1"}]
MODELS = [{"id": "m1", "modelId": "gemini-flash"}]


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def files(tmp_path):
    paths = {}
    for name, data in (("workflow", GRAPH), ("prompts", PROMPTS), ("models", MODELS)):
        path = tmp_path / f"{name}.json"
        path.write_text(json.dumps(data))
        paths[name] = str(path)
    return paths


def run_args(files, *extra):
    return [
        "run",
        files["workflow"],
        "--prompts",
        files["prompts"],
        "--models",
        files["models"],
        *extra,
    ]


def test_run_with_mock(files, capsys):
    code = main(run_args(files, "--input", '{"topic": "oceans"}', "--mock", "Blue", "-q"))

    assert code == 0
    assert capsys.readouterr().out.strip() == "Result: Blue"


def test_run_prints_full_log_as_json(files, capsys):
    code = main(run_args(files, "--input", '{"topic": "oceans"}', "--mock", "Blue", "--json"))

    out = capsys.readouterr().out
    log = json.loads(out)
    assert code == 0
    assert [s["nodeId"] for s in log["steps"]] == ["start", "g1", "end"]


def test_run_failure_exit_code(files, tmp_path, capsys):
    (tmp_path / "prompts.json").write_text("[]")

    code = main(run_args(files, "--mock", "x", "-q"))

    assert code == 1
    assert "Ref version not found" in capsys.readouterr().out


def test_run_saves_and_logs_lists(files, tmp_path, capsys):
    store = tmp_path / "runs"
    main(run_args(files, "--input", '{"topic": "a"}', "--mock", "Blue", "-q", "--save", str(store)))
    capsys.readouterr()

    code = main(["logs", "workflow", "--store", str(store)])

    assert code == 0
    out = capsys.readouterr().out
    assert "success" in out
    assert "Result: Blue" in out


def test_batch(files, tmp_path, capsys):
    cases = tmp_path / "cases.json"
    cases.write_text(json.dumps([{"id": "c1", "inputs": {"topic": "a"}}, {"id": "c2"}]))

    code = main(
        [
            "batch",
            files["workflow"],
            "--prompts",
            files["prompts"],
            "--models",
            files["models"],
            "--cases",
            str(cases),
            "--mock",
            "Blue",
            "-q",
        ]
    )

    results = json.loads(capsys.readouterr().out)
    assert code == 0
    assert [r["caseId"] for r in results] == ["c1", "c2"]
    assert "runLog" not in results[0]


def test_validate_reports_problems(tmp_path, capsys):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"nodes": [{"id": "end", "type": "end"}], "edges": []}))

    assert main(["validate", str(path)]) == 1
    assert "no start node" in capsys.readouterr().out


def test_validate_ok(files, capsys):
    assert main(["validate", files["workflow"]]) == 0
    assert "3 node(s)" in capsys.readouterr().out


def test_bad_input_json_is_reported(files, capsys):
    assert main(run_args(files, "--input", "{nope", "--mock", "x")) == 2
    assert "--input" in capsys.readouterr().err


def test_load_workflow_from_prompt_version(tmp_path):
    path = tmp_path / "version.json"
    path.write_text(json.dumps({"id": "wf-9", "type": "workflow", "content": json.dumps(GRAPH)}))

    graph, workflow_id = load_workflow(str(path))

    assert workflow_id == "wf-9"
    assert len(graph.nodes) == 3


def test_load_workflow_rejects_invalid_graph(tmp_path):
    path = tmp_path / "version.json"
    path.write_text(json.dumps({"id": "wf", "type": "workflow", "content": "{broken"}))

    with pytest.raises(GraphLoadError):
        load_workflow(str(path))


def test_load_attachment(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hello")

    attachment = load_attachment(str(path))

    assert attachment.type == "text"
    assert attachment.data == "data:text/plain;base64,aGVsbG8="
