"""Run one task end to end: build context, launch the CLI, record the outcome."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from .context import TaskContextBuilder, TaskExecutionContext
from .errors import CommandTimedOut, NonZeroExit, TaskExecutionError
from .interpreter import find_result
from .models import TaskRequest, TaskResponse
from .runner import ClaudeRunner, build_claude_args
from .workdir import TaskWorkdir

logger = logging.getLogger(__name__)


class TaskExecutor:
    """Run one task end to end and always produce a terminal TaskResponse."""

    def __init__(self, *, context_builder: TaskContextBuilder, runner: ClaudeRunner) -> None:
        self.context_builder = context_builder
        self.runner = runner

    async def execute(
        self,
        task_id: str,
        request: TaskRequest,
        *,
        created_at: datetime,
    ) -> TaskResponse:
        started_at = _utc_now()
        workdir = TaskWorkdir.for_task(self.context_builder.temp_dir, task_id)
        logger.info(
            "task_run event=start task_id=%s task_type=%s", task_id, request.task_type
        )
        try:
            context = await self.context_builder.build(task_id, request)
            response = await self._run_claude(context, created_at=created_at)
        except asyncio.CancelledError:
            # The manager records the cancelled outcome; the runner has killed the process.
            logger.info("task_run event=cancelled task_id=%s", task_id)
            raise
        except CommandTimedOut as exc:
            response = self._terminal(
                task_id,
                request,
                status="timeout",
                error=str(exc),
                created_at=created_at,
                started_at=started_at,
            )
        except TaskExecutionError as exc:
            response = self._terminal(
                task_id,
                request,
                status="failed",
                error=str(exc),
                created_at=created_at,
                started_at=started_at,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("task_run event=unexpected_error task_id=%s", task_id)
            response = self._terminal(
                task_id,
                request,
                status="failed",
                error=str(exc) or exc.__class__.__name__,
                created_at=created_at,
                started_at=started_at,
            )

        workdir.write_response(response)
        logger.info(
            "task_run event=completed task_id=%s status=%s error=%s",
            task_id,
            response.status,
            response.error,
        )
        return response

    async def _run_claude(
        self, context: TaskExecutionContext, *, created_at: datetime
    ) -> TaskResponse:
        args = build_claude_args(context.request)
        try:
            output = await self.runner.run(
                args,
                cwd=context.working_directory,
                prompt=context.prompt,
                timeout_s=context.timeout_s,
            )
        except (CommandTimedOut, NonZeroExit) as exc:
            # Keep whatever the process printed for later inspection.
            context.workdir.write_output(exc.stdout)
            raise

        context.workdir.write_output(output.stdout)
        event = find_result(output.stdout)
        return TaskResponse(
            task_id=context.task_id,
            status="completed",
            result=event.payload,
            execution_metrics=event.metrics(),
            created_at=created_at,
            started_at=context.started_at,
            completed_at=_utc_now(),
            metadata=context.request.metadata,
        )

    @staticmethod
    def _terminal(
        task_id: str,
        request: TaskRequest,
        *,
        status: str,
        error: str,
        created_at: datetime,
        started_at: datetime,
    ) -> TaskResponse:
        return TaskResponse(
            task_id=task_id,
            status=status,
            error=error,
            created_at=created_at,
            started_at=started_at,
            completed_at=_utc_now(),
            metadata=request.metadata,
        )


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)
