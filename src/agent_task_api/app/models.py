"""Pydantic models shared across API, context builder, executor, and task manager.

Terms used in this file:
- Alias: the camelCase JSON key used on the wire; Python code uses snake_case names.
- Literal: restricts a field to a fixed set of allowed string values.
- Field(default_factory=...): creates a fresh default object per instance.
"""

from __future__ import annotations

import shlex
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Task lifecycle states used by the manager and API responses.
TaskStatus = Literal["pending", "running", "completed", "failed", "timeout"]
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed", "timeout"})

TaskType = Literal[
    "code-review",
    "bug-fix",
    "feature-implementation",
    "documentation",
    "performance-analysis",
    "security-audit",
    "custom",
]


class CamelModel(BaseModel):
    """Base model that speaks camelCase JSON but accepts snake_case too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TaskRequest(CamelModel):
    """Request body for POST /tasks."""

    task_type: TaskType
    prompt: str | None = None
    prompt_file: str | None = None
    # Extra CLI flags, shell-quoted; split with shlex before launch.
    claude_args: str | None = None
    model: str | None = None
    max_turns: int | None = Field(default=None, ge=1)
    allowed_tools: str | None = None
    disallowed_tools: str | None = None
    system_prompt: str | None = None
    append_system_prompt: str | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)
    output_schema: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    repo_url: str | None = None

    @field_validator("allowed_tools", "disallowed_tools", mode="before")
    @classmethod
    def _join_tool_list(cls, value: Any) -> Any:
        # The CLI takes a comma-separated list; JSON arrays are folded into that form.
        if isinstance(value, list):
            names = [str(item).strip() for item in value if str(item).strip()]
            return ",".join(names) if names else None
        return value

    @field_validator("claude_args")
    @classmethod
    def _check_shell_quoting(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                shlex.split(value)
            except ValueError as exc:
                raise ValueError(f"claudeArgs is not valid shell syntax: {exc}") from exc
        return value


class ExecutionMetrics(CamelModel):
    duration_ms: float = 0
    num_turns: int = 0
    total_cost_usd: float = 0.0
    permission_denials: int = 0


class TaskResponse(CamelModel):
    """Canonical task record shape returned by the API and persisted on disk."""

    task_id: str
    status: TaskStatus = "pending"
    result: Any | None = None
    error: str | None = None
    execution_metrics: ExecutionMetrics | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    metadata: dict[str, Any] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class CancelResponse(CamelModel):
    task_id: str
    status: Literal["cancelled"] = "cancelled"
    message: str = "Task cancellation requested"


class TemplateExample(CamelModel):
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class TaskTemplate(CamelModel):
    """Preset selecting default prompt, tools and turn budget for a task category."""

    id: str
    name: str
    description: str
    category: str
    default_prompt: str
    allowed_tools: str
    output_schema: dict[str, Any] | None = None
    recommended_max_turns: int
    examples: list[TemplateExample] = Field(default_factory=list)


class ApiError(BaseModel):
    """Error body returned by every non-2xx response."""

    error: str
    code: str
    details: dict[str, Any] | None = None
