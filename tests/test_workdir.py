from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from agent_task_api.app.models import ExecutionMetrics, TaskRequest, TaskResponse
from agent_task_api.app.workdir import TaskWorkdir, is_valid_task_id, reconstruct_response

RESULT_LINE = json.dumps(
    {
        "type": "result",
        "result": "done",
        "duration_ms": 50,
        "num_turns": 1,
        "total_cost_usd": 0.001,
        "permission_denials": [],
    }
)


@pytest.mark.parametrize(
    ("task_id", "valid"),
    [
        ("0b0c6c86-5b2e-4c52-8f0a-0e4f0a9e8d11", True),
        ("task_1", True),
        ("", False),
        ("../etc", False),
        ("a/b", False),
        ("x" * 65, False),
    ],
)
def test_is_valid_task_id(task_id: str, valid: bool) -> None:
    assert is_valid_task_id(task_id) is valid


def test_for_task_rejects_traversal(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        TaskWorkdir.for_task(tmp_path, "../outside")


def test_reconstruct_missing_directory(tmp_path: Path) -> None:
    assert reconstruct_response(TaskWorkdir.for_task(tmp_path, "ghost")) is None


def test_reconstruct_prefers_stored_response(tmp_path: Path) -> None:
    workdir = TaskWorkdir.for_task(tmp_path, "t1")
    workdir.create()
    stored = TaskResponse(
        task_id="t1",
        status="timeout",
        error="Claude execution timed out after 1 seconds",
        created_at=datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC),
        metadata={"k": "v"},
    )
    workdir.write_response(stored)
    workdir.write_output(RESULT_LINE)

    assert reconstruct_response(workdir) == stored


def test_reconstruct_from_output_only(tmp_path: Path) -> None:
    workdir = TaskWorkdir.for_task(tmp_path, "t2")
    workdir.create()
    workdir.write_request(TaskRequest(task_type="custom", prompt="x", metadata={"run": 2}))
    workdir.write_output("noise\n" + RESULT_LINE + "\n")

    recovered = reconstruct_response(workdir)

    assert recovered is not None
    assert recovered.status == "completed"
    assert recovered.result == "done"
    assert recovered.metadata == {"run": 2}
    assert recovered.execution_metrics == ExecutionMetrics(
        duration_ms=50, num_turns=1, total_cost_usd=0.001, permission_denials=0
    )
    assert recovered.completed_at is not None


def test_reconstruct_tolerates_unusual_result_fields(tmp_path: Path) -> None:
    workdir = TaskWorkdir.for_task(tmp_path, "t6")
    workdir.create()
    workdir.write_output(
        json.dumps({"type": "result", "result": "ok", "permission_denials": {"Bash": 1}})
    )

    recovered = reconstruct_response(workdir)

    assert recovered is not None
    assert recovered.status == "completed"
    assert recovered.result == "ok"
    assert recovered.execution_metrics is not None
    assert recovered.execution_metrics.permission_denials == 0


def test_reconstruct_output_without_result(tmp_path: Path) -> None:
    workdir = TaskWorkdir.for_task(tmp_path, "t3")
    workdir.create()
    workdir.write_output(json.dumps({"type": "assistant"}))

    recovered = reconstruct_response(workdir)

    assert recovered is not None
    assert recovered.status == "failed"
    assert recovered.error == "Task completed but no result found in output"


def test_reconstruct_without_output(tmp_path: Path) -> None:
    workdir = TaskWorkdir.for_task(tmp_path, "t4")
    workdir.create()

    recovered = reconstruct_response(workdir)

    assert recovered is not None
    assert recovered.status == "failed"
    assert recovered.error == "Task output not found"


def test_request_round_trip_uses_camel_case(tmp_path: Path) -> None:
    workdir = TaskWorkdir.for_task(tmp_path, "t5")
    workdir.create()
    request = TaskRequest(task_type="bug-fix", prompt="fix", max_turns=4, allowed_tools=["Read"])

    workdir.write_request(request)

    on_disk = json.loads(workdir.request_path.read_text(encoding="utf-8"))
    assert on_disk == {"taskType": "bug-fix", "prompt": "fix", "maxTurns": 4, "allowedTools": "Read"}
    assert workdir.read_request() == request
