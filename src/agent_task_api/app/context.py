"""Prepare an execution-ready context for one task.

Steps, in order:
1) allocate the task directory;
2) fill missing tool list / turn budget / timeout from the category template;
3) persist the resolved request before anything can fail mid-way;
4) resolve and write the prompt;
5) optionally materialize the source repository as the working directory.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from .errors import EmptyPrompt, PromptFileError, RepositorySetupFailed
from .models import TaskRequest
from .repo_client import RepositoryHostClient
from .templates import get_task_template
from .workdir import TaskWorkdir

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_TOOLS = "Edit,Read,Bash,Write,Grep,WebSearch"
DEFAULT_MAX_TURNS = 30


@dataclass(slots=True)
class TaskExecutionContext:
    task_id: str
    request: TaskRequest
    workdir: TaskWorkdir
    prompt: str
    workspace_path: Path | None = None
    branch: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    @property
    def working_directory(self) -> Path:
        return self.workspace_path or self.workdir.workspace_dir

    @property
    def timeout_s(self) -> float:
        # Always set by resolve_defaults.
        return float(self.request.timeout_seconds or 0)


def resolve_defaults(request: TaskRequest, *, default_timeout_s: float) -> TaskRequest:
    """Return a copy of the request with template or built-in defaults applied."""
    updates: dict[str, object] = {}
    template = get_task_template(request.task_type)
    if not request.allowed_tools:
        updates["allowed_tools"] = template.allowed_tools if template else DEFAULT_ALLOWED_TOOLS
    if not request.max_turns:
        updates["max_turns"] = template.recommended_max_turns if template else DEFAULT_MAX_TURNS
    if request.timeout_seconds is None:
        updates["timeout_seconds"] = default_timeout_s
    return request.model_copy(update=updates)


def resolve_prompt(request: TaskRequest) -> str:
    """Inline prompt, then prompt file, then the category's default prompt."""
    if request.prompt and request.prompt.strip():
        prompt = request.prompt
    elif request.prompt_file:
        prompt = _read_prompt_file(Path(request.prompt_file))
    else:
        template = get_task_template(request.task_type)
        prompt = template.default_prompt if template else ""

    if not prompt.strip():
        raise EmptyPrompt("Prompt is empty. Please provide a non-empty prompt.")
    return prompt


def _read_prompt_file(path: Path) -> str:
    if not path.is_file():
        raise PromptFileError(f"Prompt file '{path}' does not exist")
    if path.stat().st_size == 0:
        raise PromptFileError("Prompt file is empty")
    return path.read_text(encoding="utf-8")


class TaskContextBuilder:
    def __init__(
        self,
        *,
        temp_dir: Path,
        default_timeout_s: float,
        repo_client: RepositoryHostClient | None = None,
        base_branch: str = "main",
    ) -> None:
        self.temp_dir = temp_dir
        self.default_timeout_s = default_timeout_s
        self.repo_client = repo_client
        self.base_branch = base_branch

    async def build(self, task_id: str, request: TaskRequest) -> TaskExecutionContext:
        workdir = TaskWorkdir.for_task(self.temp_dir, task_id)
        workdir.create()

        resolved = resolve_defaults(request, default_timeout_s=self.default_timeout_s)
        workdir.write_request(resolved)

        prompt = resolve_prompt(resolved)
        workdir.write_prompt(prompt)

        context = TaskExecutionContext(
            task_id=task_id,
            request=resolved,
            workdir=workdir,
            prompt=prompt,
        )
        if resolved.repo_url:
            context.branch = await self._materialize_repository(context, resolved.repo_url)
            context.workspace_path = workdir.repo_dir
        return context

    async def _materialize_repository(self, context: TaskExecutionContext, repo_url: str) -> str:
        if self.repo_client is None:
            raise RepositorySetupFailed(
                "Failed to setup repository: no repository service configured"
            )
        feature_branch = f"hotfix-{context.task_id}"
        try:
            created = await asyncio.to_thread(
                self.repo_client.create_branch, repo_url, self.base_branch, feature_branch
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "repo_setup event=branch_error task_id=%s branch=%s reason=%s",
                context.task_id,
                feature_branch,
                exc,
            )
            created = False

        branch = feature_branch
        if not created:
            logger.warning(
                "repo_setup event=branch_fallback task_id=%s branch=%s fallback=%s",
                context.task_id,
                feature_branch,
                self.base_branch,
            )
            branch = self.base_branch

        try:
            await asyncio.to_thread(
                self.repo_client.download_repo, repo_url, branch, context.workdir.repo_dir
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "repo_setup event=download_failed task_id=%s branch=%s reason=%s",
                context.task_id,
                branch,
                exc,
            )
            raise RepositorySetupFailed(f"Failed to setup repository: {exc}") from exc
        return branch
