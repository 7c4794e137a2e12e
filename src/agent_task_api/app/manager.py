"""Task lifecycle: identity, in-flight tracking, admission control, recovery.

All methods run on the event loop thread; the in-flight table is only mutated
there, so it needs no lock. A port to threads would need one.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime
from pathlib import Path

from .errors import AdmissionRejected, TaskNotFound
from .executor import TaskExecutor
from .models import CancelResponse, TaskRequest, TaskResponse
from .workdir import TaskWorkdir, is_valid_task_id, reconstruct_response

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InFlightTask:
    record: TaskResponse
    handle: asyncio.Task[TaskResponse] | None = None


class TaskManager:
    def __init__(
        self,
        *,
        executor: TaskExecutor,
        temp_dir: Path,
        max_concurrent_tasks: int,
    ) -> None:
        self.executor = executor
        self.temp_dir = temp_dir
        self.max_concurrent_tasks = max_concurrent_tasks
        self._in_flight: dict[str, InFlightTask] = {}
        self._completed_day: date = date.today()
        self._completed_count = 0

    @property
    def active_count(self) -> int:
        return len(self._in_flight)

    @property
    def completed_today(self) -> int:
        if self._completed_day != date.today():
            return 0
        return self._completed_count

    def submit(self, request: TaskRequest) -> TaskResponse:
        """Register a pending task and start it in the background.

        Must be called from a coroutine running on the event loop.
        """
        if self.active_count >= self.max_concurrent_tasks:
            logger.warning(
                "task_submit event=rejected active=%d max=%d",
                self.active_count,
                self.max_concurrent_tasks,
            )
            raise AdmissionRejected(current=self.active_count, maximum=self.max_concurrent_tasks)

        task_id = str(uuid.uuid4())
        record = TaskResponse(
            task_id=task_id,
            status="pending",
            created_at=datetime.now(tz=UTC),
            metadata=request.metadata,
        )
        entry = InFlightTask(record=record)
        self._in_flight[task_id] = entry
        entry.handle = asyncio.create_task(
            self._run(task_id, request, created_at=record.created_at),
            name=f"task-{task_id}",
        )
        entry.handle.add_done_callback(lambda handle: self._settle(task_id, handle))
        logger.info(
            "task_submit event=accepted task_id=%s task_type=%s active=%d",
            task_id,
            request.task_type,
            self.active_count,
        )
        return record.model_copy()

    async def _run(self, task_id: str, request: TaskRequest, *, created_at: datetime) -> TaskResponse:
        response = await self.executor.execute(task_id, request, created_at=created_at)
        entry = self._in_flight.get(task_id)
        if entry is not None:
            entry.record = response
        return response

    def _settle(self, task_id: str, handle: asyncio.Task[TaskResponse]) -> None:
        entry = self._in_flight.get(task_id)
        if entry is not None and entry.handle is handle:
            del self._in_flight[task_id]
        if handle.cancelled():
            return
        exc = handle.exception()
        if exc is not None:
            logger.error("task_settle event=crashed task_id=%s reason=%s", task_id, exc)
            return
        today = date.today()
        if today != self._completed_day:
            self._completed_day = today
            self._completed_count = 0
        self._completed_count += 1

    def get(self, task_id: str) -> TaskResponse:
        entry = self._in_flight.get(task_id)
        if entry is not None:
            return entry.record.model_copy()
        if not is_valid_task_id(task_id):
            raise TaskNotFound(task_id)
        recovered = reconstruct_response(TaskWorkdir.for_task(self.temp_dir, task_id))
        if recovered is None:
            raise TaskNotFound(task_id)
        return recovered

    def cancel(self, task_id: str) -> CancelResponse:
        """Drop the task from the in-flight table and stop its subprocess."""
        entry = self._in_flight.pop(task_id, None)
        if entry is None:
            raise TaskNotFound(task_id)
        self._abort(entry, reason="Task was cancelled")
        logger.info("task_cancel event=requested task_id=%s", task_id)
        return CancelResponse(task_id=task_id)

    async def shutdown(self) -> None:
        entries = list(self._in_flight.values())
        self._in_flight.clear()
        for entry in entries:
            self._abort(entry, reason="Server shut down before the task finished")
        handles = [entry.handle for entry in entries if entry.handle is not None]
        if handles:
            await asyncio.gather(*handles, return_exceptions=True)

    def _abort(self, entry: InFlightTask, *, reason: str) -> None:
        if entry.handle is not None and not entry.handle.done():
            entry.handle.cancel()
        if entry.record.is_terminal:
            return
        now = datetime.now(tz=UTC)
        record = entry.record.model_copy(
            update={"status": "failed", "error": reason, "completed_at": now}
        )
        TaskWorkdir.for_task(self.temp_dir, record.task_id).write_response(record)
