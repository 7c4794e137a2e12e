"""On-disk layout for one task and recovery of task records from it.

Layout under `<temp_dir>/<task_id>/`:
- request.json   resolved TaskRequest, written before execution
- prompt.txt     prompt text sent on stdin
- output.jsonl   raw captured stdout of the CLI
- response.json  terminal TaskResponse
- workspace/     default empty working directory
- repo/          materialized source repository, when requested
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from .errors import NoResultFound
from .interpreter import find_result
from .models import TaskRequest, TaskResponse

_TASK_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def is_valid_task_id(task_id: str) -> bool:
    return bool(_TASK_ID_PATTERN.match(task_id))


@dataclass(frozen=True, slots=True)
class TaskWorkdir:
    root: Path

    @classmethod
    def for_task(cls, temp_dir: Path, task_id: str) -> TaskWorkdir:
        if not is_valid_task_id(task_id):
            raise ValueError(f"Invalid task id: {task_id!r}")
        return cls(root=temp_dir / task_id)

    @property
    def task_id(self) -> str:
        return self.root.name

    @property
    def request_path(self) -> Path:
        return self.root / "request.json"

    @property
    def prompt_path(self) -> Path:
        return self.root / "prompt.txt"

    @property
    def output_path(self) -> Path:
        return self.root / "output.jsonl"

    @property
    def response_path(self) -> Path:
        return self.root / "response.json"

    @property
    def workspace_dir(self) -> Path:
        return self.root / "workspace"

    @property
    def repo_dir(self) -> Path:
        return self.root / "repo"

    def create(self) -> None:
        self.workspace_dir.mkdir(parents=True, exist_ok=True)

    def exists(self) -> bool:
        return self.root.is_dir()

    def write_request(self, request: TaskRequest) -> None:
        payload = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        self.request_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def read_request(self) -> TaskRequest | None:
        try:
            return TaskRequest.model_validate_json(self.request_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError):
            return None

    def write_prompt(self, prompt: str) -> None:
        self.prompt_path.write_text(prompt, encoding="utf-8")

    def write_output(self, raw: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.output_path.write_text(raw, encoding="utf-8")

    def write_response(self, response: TaskResponse) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.response_path.write_text(
            response.model_dump_json(by_alias=True, indent=2), encoding="utf-8"
        )

    def read_response(self) -> TaskResponse | None:
        try:
            return TaskResponse.model_validate_json(self.response_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError):
            return None


def reconstruct_response(workdir: TaskWorkdir) -> TaskResponse | None:
    """Rebuild a terminal TaskResponse from disk artifacts.

    Returns None when the task directory does not exist at all.
    """
    if not workdir.exists():
        return None

    stored = workdir.read_response()
    if stored is not None:
        return stored

    request = workdir.read_request()
    metadata = request.metadata if request else None
    task_id = workdir.task_id

    try:
        raw = workdir.output_path.read_text(encoding="utf-8")
        stats = workdir.output_path.stat()
    except OSError:
        return TaskResponse(
            task_id=task_id,
            status="failed",
            error="Task output not found",
            created_at=_file_time(workdir.root.stat().st_mtime),
            metadata=metadata,
        )

    created_at = _file_time(getattr(stats, "st_birthtime", stats.st_ctime))
    completed_at = _file_time(stats.st_mtime)
    try:
        event = find_result(raw)
    except NoResultFound:
        return TaskResponse(
            task_id=task_id,
            status="failed",
            error="Task completed but no result found in output",
            created_at=created_at,
            metadata=metadata,
        )
    return TaskResponse(
        task_id=task_id,
        status="completed",
        result=event.payload,
        execution_metrics=event.metrics(),
        created_at=created_at,
        started_at=created_at,
        completed_at=completed_at,
        metadata=metadata,
    )


def _file_time(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=UTC)
