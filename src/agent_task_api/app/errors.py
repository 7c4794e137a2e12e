"""Error taxonomy for the task API.

Two families live here:
- TaskApiError: request-level failures rendered directly as HTTP error bodies.
- TaskExecutionError: task-level failures captured into the terminal task record
  and never raised to the submitting caller.
"""

from __future__ import annotations

from typing import Any


class TaskApiError(Exception):
    """Raised for failures that map onto an HTTP error response."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class TaskNotFound(TaskApiError):
    status_code = 404
    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str) -> None:
        super().__init__("Task not found", details={"taskId": task_id})
        self.task_id = task_id


class TemplateNotFound(TaskApiError):
    status_code = 404
    code = "TEMPLATE_NOT_FOUND"

    def __init__(self, task_type: str) -> None:
        super().__init__("Task template not found", details={"taskType": task_type})
        self.task_type = task_type


class AdmissionRejected(TaskApiError):
    status_code = 429
    code = "CONCURRENT_LIMIT_REACHED"

    def __init__(self, *, current: int, maximum: int) -> None:
        super().__init__(
            "Maximum concurrent tasks reached",
            details={"current": current, "max": maximum},
        )
        self.current = current
        self.maximum = maximum


class Unauthorized(TaskApiError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self) -> None:
        super().__init__("Unauthorized")


class RateLimitExceeded(TaskApiError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"


class TaskExecutionError(RuntimeError):
    """Base class for failures that end a task in a terminal failure state."""


class EmptyPrompt(TaskExecutionError):
    """Raised when no usable prompt text can be resolved for a task."""


class PromptFileError(EmptyPrompt):
    """Raised when a caller-specified prompt file is missing or empty."""


class RepositorySetupFailed(TaskExecutionError):
    """Raised when the source repository cannot be materialized."""


class ProcessLaunchError(TaskExecutionError):
    """Raised when the agent subprocess cannot be started."""


class NonZeroExit(TaskExecutionError):
    """Raised when the agent subprocess exits with a failure status."""

    def __init__(self, message: str, *, exit_code: int, stdout: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class CommandTimedOut(TaskExecutionError):
    """Raised when the agent subprocess outlives its timeout and is killed."""

    def __init__(self, timeout_s: float, *, stdout: str = "", stderr: str = "") -> None:
        super().__init__(f"Claude execution timed out after {_format_seconds(timeout_s)} seconds")
        self.timeout_s = timeout_s
        self.stdout = stdout
        self.stderr = stderr


class NoResultFound(TaskExecutionError):
    """Raised when the subprocess output holds no terminal result event."""


def _format_seconds(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
