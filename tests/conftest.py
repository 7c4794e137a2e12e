from __future__ import annotations

import stat
import sys
import time
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from agent_task_api.app.settings import Settings

# Stand-in for the `claude` CLI. Behavior is picked with FAKE_CLAUDE_MODE so the
# runner, executor and HTTP tests exercise real subprocess plumbing.
FAKE_CLAUDE_SOURCE = r'''
import json
import os
import sys
import time

mode = os.environ.get("FAKE_CLAUDE_MODE", "ok")

if "--version" in sys.argv:
    if mode == "unhealthy":
        sys.exit(1)
    print("1.0.30 (Claude Code)")
    sys.exit(0)

prompt = sys.stdin.read()
with open("invocation.json", "w", encoding="utf-8") as handle:
    json.dump({"argv": sys.argv[1:], "prompt": prompt, "cwd": os.getcwd()}, handle)

if mode == "sleep":
    with open("fake.pid", "w", encoding="utf-8") as handle:
        handle.write(str(os.getpid()))
    print(json.dumps({"type": "system", "subtype": "init"}), flush=True)
    time.sleep(60)
    sys.exit(0)

if mode == "fail":
    sys.stderr.write("boom: invalid api key\n")
    sys.exit(2)

if mode == "fail-silent":
    sys.exit(3)

if mode == "error-marker":
    print("Error: credit balance too low")
    sys.exit(0)

print("warming up the agent")
print(json.dumps({"type": "system", "subtype": "init", "tools": ["Read"]}))

if mode == "noresult":
    print(json.dumps({"type": "assistant", "message": {"content": "thinking"}}))
    sys.exit(0)

print(json.dumps({"type": "result", "subtype": "success", "result": "draft", "num_turns": 1}))
print("{not json")
print(
    json.dumps(
        {
            "type": "result",
            "subtype": "success",
            "is_error": False,
            "result": os.environ.get("FAKE_CLAUDE_RESULT", "10"),
            "duration_ms": 1234,
            "num_turns": 2,
            "total_cost_usd": 0.0123,
            "permission_denials": [{"tool_name": "Bash"}],
        }
    )
)
'''


@pytest.fixture
def fake_claude(tmp_path: Path) -> Path:
    script = tmp_path / "bin" / "claude"
    script.parent.mkdir(parents=True, exist_ok=True)
    script.write_text(f"#!{sys.executable}\n{FAKE_CLAUDE_SOURCE}", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    return tmp_path / "tasks"


@pytest.fixture
def settings(fake_claude: Path, temp_dir: Path) -> Settings:
    return Settings(
        _env_file=None,
        claude_executable_path=str(fake_claude),
        temp_dir=temp_dir,
        default_timeout_s=30.0,
        max_concurrent_tasks=5,
        rate_limit_per_minute=0,
        health_check_timeout_s=5.0,
    )


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    from agent_task_api.main import create_app

    app = create_app(settings_override=settings)
    with TestClient(app) as test_client:
        yield test_client


def wait_for_terminal(client: TestClient, task_id: str, timeout_s: float = 15.0) -> dict[str, Any]:
    deadline = time.monotonic() + timeout_s
    while True:
        response = client.get(f"/tasks/{task_id}")
        assert response.status_code == 200
        payload = response.json()
        if payload["status"] not in {"pending", "running"}:
            return payload
        if time.monotonic() >= deadline:
            raise AssertionError(f"task {task_id} still {payload['status']} after {timeout_s}s")
        time.sleep(0.05)


def process_alive(pid: int) -> bool:
    import os

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def wait_for_file(path: Path, timeout_s: float = 10.0) -> str:
    deadline = time.monotonic() + timeout_s
    while not path.exists() or not path.read_text(encoding="utf-8").strip():
        if time.monotonic() >= deadline:
            raise AssertionError(f"{path} never appeared")
        time.sleep(0.02)
    return path.read_text(encoding="utf-8")
