"""Tests for the JSONL run log store."""

import pytest

from promptlab.storage.run_log_store import RunLogStore
from promptlab.workflow.run_log import NodeStatus, RunLogBuilder, RunStatus, RunStep


def make_log(run_id, timestamp, failed=False):
    builder = RunLogBuilder({"topic": "x"}, run_id=run_id)
    builder.timestamp = timestamp
    status = NodeStatus.ERROR if failed else NodeStatus.SUCCESS
    builder.add_step(RunStep(node_id="g1", status=status, output="out"))
    if not failed:
        builder.set_output("final", f"result {run_id}")
    return builder.build()


@pytest.mark.asyncio
async def test_append_and_list_newest_first(tmp_path):
    store = RunLogStore(tmp_path)
    await store.append("wf-1", make_log("log-a", 1000))
    await store.append("wf-1", make_log("log-b", 3000))
    await store.append("wf-1", make_log("log-c", 2000))

    logs = await store.list_logs("wf-1")

    assert [log.id for log in logs] == ["log-b", "log-c", "log-a"]
    assert logs[0].final_output == "result log-b"
    assert (tmp_path / "workflows" / "wf-1" / "logs.jsonl").exists()


@pytest.mark.asyncio
async def test_filter_and_limit(tmp_path):
    store = RunLogStore(tmp_path)
    store.append_sync("wf", make_log("ok-1", 1))
    store.append_sync("wf", make_log("bad-1", 2, failed=True))
    store.append_sync("wf", make_log("ok-2", 3))

    errors = await store.list_logs("wf", status="error")
    assert [log.id for log in errors] == ["bad-1"]
    assert errors[0].status == RunStatus.ERROR

    latest = await store.list_logs("wf", limit=1)
    assert [log.id for log in latest] == ["ok-2"]


@pytest.mark.asyncio
async def test_get_by_run_id(tmp_path):
    store = RunLogStore(tmp_path)
    store.append_sync("wf", make_log("log-a", 1))

    assert (await store.get("wf", "log-a")).id == "log-a"
    assert await store.get("wf", "missing") is None


@pytest.mark.asyncio
async def test_unknown_version_has_no_logs(tmp_path):
    assert await RunLogStore(tmp_path).list_logs("nothing") == []


def test_corrupt_lines_are_skipped(tmp_path):
    store = RunLogStore(tmp_path)
    path = store.append_sync("wf", make_log("log-a", 1))
    with open(path, "a", encoding="utf-8") as f:
        f.write('{"id": "log-broken", "times\n')
        f.write("\n")
    store.append_sync("wf", make_log("log-b", 2))

    assert [log.id for log in store.load_sync("wf")] == ["log-a", "log-b"]


def test_stored_lines_use_camel_case(tmp_path):
    path = RunLogStore(tmp_path).append_sync("wf", make_log("log-a", 1))
    line = path.read_text(encoding="utf-8").strip()
    assert '"nodeId": "g1"' in line
    assert '"durationMs"' in line


def test_list_versions_and_unsafe_ids(tmp_path):
    store = RunLogStore(tmp_path)
    store.append_sync("wf-b", make_log("1", 1))
    store.append_sync("../wf a", make_log("2", 2))

    assert store.list_versions() == [".._wf_a", "wf-b"]
    assert [log.id for log in store.load_sync("../wf a")] == ["2"]
    assert RunLogStore(tmp_path / "empty").list_versions() == []
