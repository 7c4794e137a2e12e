"""Subprocess runner for the `claude` CLI.

The runner owns three things:
- building the argument vector from a resolved TaskRequest;
- launching the CLI with the prompt on stdin and both output streams captured;
- racing the process against a wall-clock timeout and killing it on expiry.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from .errors import CommandTimedOut, NonZeroExit, ProcessLaunchError
from .models import TaskRequest

logger = logging.getLogger(__name__)

# Flags appended to every invocation: verbose stream-json output and no
# interactive permission prompts.
FIXED_FLAGS: tuple[str, ...] = (
    "--verbose",
    "--output-format",
    "stream-json",
    "--dangerously-skip-permissions",
)
_READ_CHUNK_BYTES = 64 * 1024


@dataclass(slots=True)
class RunOutput:
    exit_code: int
    stdout: str
    stderr: str


def resolve_executable(path: str | None = None, *, os_name: str | None = None) -> str:
    """Resolve the CLI executable once, including the Windows `.cmd` shim."""
    executable = (path or "").strip() or "claude"
    current_os_name = os_name or os.name
    if current_os_name == "nt" and executable == "claude":
        return "claude.cmd"
    return executable


def build_claude_args(request: TaskRequest) -> list[str]:
    # `-p -` reads the prompt from stdin.
    args = ["-p", "-"]
    if request.allowed_tools:
        args.extend(["--allowedTools", request.allowed_tools])
    if request.disallowed_tools:
        args.extend(["--disallowedTools", request.disallowed_tools])
    if request.max_turns:
        args.extend(["--max-turns", str(request.max_turns)])
    if request.model:
        args.extend(["--model", request.model])
    if request.system_prompt:
        args.extend(["--system-prompt", request.system_prompt])
    if request.append_system_prompt:
        args.extend(["--append-system-prompt", request.append_system_prompt])
    if request.output_schema:
        args.extend(["--json-schema", json.dumps(request.output_schema)])
    if request.claude_args:
        args.extend(shlex.split(request.claude_args))
    args.extend(FIXED_FLAGS)
    return args


class ClaudeRunner:
    """Run one `claude` process per call."""

    def __init__(
        self,
        executable: str | None = None,
        *,
        kill_grace_s: float = 2.0,
        env: dict[str, str] | None = None,
    ) -> None:
        self.executable = resolve_executable(executable)
        self.kill_grace_s = kill_grace_s
        self._env_overrides = dict(env or {})

    def _build_env(self) -> dict[str, str]:
        # The provider credential (ANTHROPIC_API_KEY) travels with the parent env.
        env = os.environ.copy()
        env.update(self._env_overrides)
        return env

    async def run(
        self,
        args: list[str],
        *,
        cwd: Path | None,
        prompt: str,
        timeout_s: float,
    ) -> RunOutput:
        logger.info(
            "claude_run event=start executable=%s cwd=%s timeout_s=%s",
            self.executable,
            cwd or "default",
            timeout_s,
        )
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *args,
                cwd=str(cwd) if cwd else None,
                env=self._build_env(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ProcessLaunchError(
                f"Failed to start Claude process '{self.executable}': {exc}"
            ) from exc

        stdout_chunks: list[bytes] = []
        stderr_chunks: list[bytes] = []

        async def _communicate() -> int:
            await asyncio.gather(
                _feed_stdin(process, prompt),
                _pump(process.stdout, stdout_chunks),
                _pump(process.stderr, stderr_chunks),
            )
            return await process.wait()

        try:
            exit_code = await asyncio.wait_for(_communicate(), timeout=timeout_s)
        except TimeoutError:
            await self._terminate(process)
            logger.warning(
                "claude_run event=timeout pid=%s timeout_s=%s", process.pid, timeout_s
            )
            raise CommandTimedOut(
                timeout_s,
                stdout=_decode(stdout_chunks),
                stderr=_decode(stderr_chunks),
            ) from None
        except asyncio.CancelledError:
            await self._terminate(process)
            logger.info("claude_run event=cancelled pid=%s", process.pid)
            raise

        stdout_text = _decode(stdout_chunks)
        stderr_text = _decode(stderr_chunks)
        logger.info("claude_run event=exit pid=%s exit_code=%s", process.pid, exit_code)
        if exit_code != 0:
            detail = stderr_text.strip() or f"Claude process exited with code {exit_code}"
            raise NonZeroExit(
                f"Claude execution failed: {detail}",
                exit_code=exit_code,
                stdout=stdout_text,
                stderr=stderr_text,
            )
        return RunOutput(exit_code=exit_code, stdout=stdout_text, stderr=stderr_text)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace_s)
        except TimeoutError:
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

    async def check_health(self, *, timeout_s: float = 10.0) -> bool:
        """Return True when `<claude> --version` answers and mentions claude."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                "--version",
                env=self._build_env(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError:
            return False
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout_s)
        except TimeoutError:
            await self._terminate(process)
            return False
        return "claude" in stdout.decode("utf-8", errors="replace").lower()


async def _feed_stdin(process: asyncio.subprocess.Process, prompt: str) -> None:
    if process.stdin is None:
        return
    try:
        process.stdin.write(prompt.encode("utf-8"))
        await process.stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        # The process exited before reading its input; the exit code tells the story.
        pass
    finally:
        process.stdin.close()


async def _pump(stream: asyncio.StreamReader | None, sink: list[bytes]) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        if not chunk:
            return
        sink.append(chunk)


def _decode(chunks: list[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace")
