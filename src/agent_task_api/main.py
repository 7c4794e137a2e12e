"""FastAPI application wiring for the task API.

Terms used in this file:
- FastAPI app: the main web application object.
- Route/path operation: a function exposed over HTTP (for example, GET /health).
- response_model: Pydantic model used to validate/shape API responses.
- app.state: a place to store shared runtime objects (settings, runner, manager).
"""

from __future__ import annotations

import logging
import os
import platform
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from .app.context import TaskContextBuilder
from .app.errors import TaskApiError, TemplateNotFound
from .app.executor import TaskExecutor
from .app.manager import TaskManager
from .app.models import ApiError, CancelResponse, TaskRequest, TaskResponse, TaskTemplate
from .app.repo_client import RepositoryHostClient
from .app.runner import ClaudeRunner
from .app.security import RateLimiter, check_api_key, extract_api_key
from .app.settings import Settings, get_settings
from .app.templates import get_task_template, list_task_templates, list_task_templates_by_category

logger = logging.getLogger(__name__)


def create_app(
    *,
    settings_override: Settings | None = None,
    runner: ClaudeRunner | None = None,
    repo_client: RepositoryHostClient | None = None,
) -> FastAPI:
    """Application factory.

    Builds a fully wired FastAPI app. Tests pass their own settings and runner so
    each test gets a fresh app with its own temp directory and fake CLI.
    """
    settings = settings_override or get_settings()
    temp_dir = settings.resolved_temp_dir()

    runner = runner or ClaudeRunner(settings.claude_executable_path)
    repo_client = repo_client or RepositoryHostClient(
        base_url=settings.repo_service_url,
        timeout_s=settings.repo_timeout_s,
    )
    context_builder = TaskContextBuilder(
        temp_dir=temp_dir,
        default_timeout_s=settings.default_timeout_s,
        repo_client=repo_client,
        base_branch=settings.repo_base_branch,
    )
    manager = TaskManager(
        executor=TaskExecutor(context_builder=context_builder, runner=runner),
        temp_dir=temp_dir,
        max_concurrent_tasks=settings.max_concurrent_tasks,
    )
    rate_limiter = RateLimiter(settings.rate_limit_per_minute)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        temp_dir.mkdir(parents=True, exist_ok=True)
        if not os.getenv("ANTHROPIC_API_KEY"):
            logger.warning("startup event=missing_credential name=ANTHROPIC_API_KEY")
        healthy = await runner.check_health(timeout_s=settings.health_check_timeout_s)
        logger.info(
            "startup event=ready executable=%s temp_dir=%s max_concurrent=%d "
            "rate_limit=%d auth=%s healthy=%s",
            runner.executable,
            temp_dir,
            settings.max_concurrent_tasks,
            settings.rate_limit_per_minute,
            settings.enable_auth,
            healthy,
        )
        yield
        await app.state.manager.shutdown()

    async def guard(
        request: Request,
        authorization: str | None = Header(default=None),
        x_api_key: str | None = Header(default=None),
    ) -> None:
        if settings.enable_auth:
            check_api_key(extract_api_key(authorization, x_api_key), settings.api_key)
        rate_limiter.hit(_client_key(request))

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Web API for non-interactive Claude Code task execution",
        lifespan=lifespan,
        dependencies=[Depends(guard)],
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
    )
    # Shared objects live in app.state so route handlers and tests can reach them.
    app.state.settings = settings
    app.state.runner = runner
    app.state.manager = manager
    app.state.started_monotonic = time.monotonic()

    @app.exception_handler(TaskApiError)
    async def task_api_error_handler(_: Request, exc: TaskApiError) -> JSONResponse:
        return _error_response(exc.status_code, exc.message, exc.code, exc.details)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(
            422,
            "Invalid request",
            "VALIDATION_ERROR",
            {"errors": _jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
        logger.exception("request event=unhandled_error")
        return _error_response(500, "Internal server error", "INTERNAL_ERROR", {"error": str(exc)})

    @app.get("/", include_in_schema=False)
    def home() -> RedirectResponse:
        return RedirectResponse(url="/docs")

    @app.get("/health")
    async def health() -> JSONResponse:
        healthy = await runner.check_health(timeout_s=settings.health_check_timeout_s)
        body = {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": _utc_now_iso(),
            "version": settings.app_version,
            "activeTasks": app.state.manager.active_count,
            "maxConcurrentTasks": settings.max_concurrent_tasks,
            "tempDir": str(temp_dir),
        }
        return JSONResponse(body, status_code=200 if healthy else 503)

    @app.get("/stats")
    async def stats() -> dict[str, Any]:
        healthy = await runner.check_health(timeout_s=settings.health_check_timeout_s)
        return {
            "server": {
                "version": settings.app_version,
                "uptime": round(time.monotonic() - app.state.started_monotonic, 3),
                "healthy": healthy,
            },
            "tasks": {
                "running": app.state.manager.active_count,
                "maxConcurrent": settings.max_concurrent_tasks,
                "completedToday": app.state.manager.completed_today,
            },
            "system": {
                "pythonVersion": platform.python_version(),
                "platform": platform.system().lower(),
            },
        }

    @app.get("/templates")
    def list_templates(category: str | None = None) -> dict[str, Any]:
        if category:
            templates = list_task_templates_by_category().get(category, [])
            return {
                "category": category,
                "templates": [_dump(template) for template in templates],
            }
        return {"templates": [_dump(template) for template in list_task_templates()]}

    @app.get("/templates/{task_type}", response_model=TaskTemplate, response_model_exclude_none=True)
    def get_template(task_type: str) -> TaskTemplate:
        template = get_task_template(task_type)
        if template is None:
            raise TemplateNotFound(task_type)
        return template

    # Request body is validated against TaskRequest before the manager sees it.
    # POST must stay async: the manager schedules work on the running event loop.
    @app.post(
        "/tasks",
        status_code=202,
        response_model=TaskResponse,
        response_model_exclude_none=True,
        responses={429: {"model": ApiError}},
    )
    async def create_task(payload: TaskRequest) -> TaskResponse:
        return app.state.manager.submit(payload)

    @app.get(
        "/tasks/{task_id}",
        response_model=TaskResponse,
        response_model_exclude_none=True,
        responses={404: {"model": ApiError}},
    )
    async def get_task(task_id: str) -> TaskResponse:
        return app.state.manager.get(task_id)

    @app.delete(
        "/tasks/{task_id}",
        response_model=CancelResponse,
        responses={404: {"model": ApiError}},
    )
    async def cancel_task(task_id: str) -> CancelResponse:
        return app.state.manager.cancel(task_id)

    return app


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for") or request.headers.get("x-real-ip")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def _error_response(
    status_code: int, message: str, code: str, details: dict[str, Any] | None
) -> JSONResponse:
    body = ApiError(error=message, code=code, details=details)
    return JSONResponse(body.model_dump(exclude_none=True), status_code=status_code)


def _jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    errors: list[dict[str, Any]] = []
    for item in exc.errors():
        errors.append(
            {
                "loc": [str(part) for part in item.get("loc", ())],
                "msg": str(item.get("msg", "")),
                "type": str(item.get("type", "")),
            }
        )
    return errors


def _dump(model: TaskTemplate) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def run() -> None:
    """Console entry point: configure logging and serve with uvicorn."""
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


# Module-level app for `uvicorn agent_task_api.main:app`.
app = create_app()
