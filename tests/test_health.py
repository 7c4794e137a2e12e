from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import wait_for_terminal


def test_health_reports_healthy_cli(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["version"] == "1.0.0"
    assert payload["activeTasks"] == 0
    assert payload["maxConcurrentTasks"] == 5
    assert payload["tempDir"] == str(client.app.state.settings.resolved_temp_dir())
    assert payload["timestamp"]


def test_health_reports_unhealthy_cli(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FAKE_CLAUDE_MODE", "unhealthy")

    response = client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_stats_counts_completed_tasks(client: TestClient) -> None:
    task_id = client.post("/tasks", json={"taskType": "custom", "prompt": "x"}).json()["taskId"]
    wait_for_terminal(client, task_id)

    stats = client.get("/stats")

    assert stats.status_code == 200
    payload = stats.json()
    assert payload["server"]["version"] == "1.0.0"
    assert payload["server"]["healthy"] is True
    assert payload["server"]["uptime"] >= 0
    assert payload["tasks"]["maxConcurrent"] == 5
    assert payload["tasks"]["completedToday"] == 1
    assert payload["tasks"]["running"] == 0
    assert payload["system"]["pythonVersion"]


def test_root_redirects_to_docs(client: TestClient) -> None:
    response = client.get("/", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"] == "/docs"
