"""Agent executor — runs an agent CLI as a subprocess and normalizes its output."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import copy
import json
import logging
import shlex
import signal
import time
import uuid
from typing import Any

from subagents.execution.errors import InvalidParametersError
from subagents.execution.line_buffer import LineBuffer
from subagents.execution.models import (
    AgentExecutionResult,
    AgentType,
    ExecutionConfig,
    ExecutionRequest,
)
from subagents.execution.stream import StreamProcessor

logger = logging.getLogger(__name__)

#: Binary invoked for each backend.
AGENT_BINARIES: dict[str, str] = {
    "cursor": "cursor-agent",
    "claude": "claude",
    "gemini": "gemini",
    "codex": "codex",
}

#: Backends that take the API key as ``-a <key>``.
_API_KEY_FLAG_BACKENDS = {"cursor"}

#: Exit code reported when the deadline fires.
TIMEOUT_EXIT_CODE = 124

#: Exit code reported when the process could not be spawned.
SPAWN_ERROR_EXIT_CODE = 1

#: Bytes requested per stdout/stderr read.
_READ_CHUNK = 65_536

#: Seconds to keep draining stdout/stderr after the process exits.
_DRAIN_WAIT = 1.0

#: Seconds between checks for process exit.
_EXIT_POLL = 0.05

_TIMEOUT_MESSAGE = "Execution timeout exceeded"


def format_instruction(agent: str, prompt: str) -> str:
    """Combine agent context and user prompt into the single ``-p`` argument."""
    return f"[System Context]\n{agent}\n\n[User Prompt]\n{prompt}"


def normalize_returncode(returncode: int) -> int:
    """Map asyncio's negative signal return codes to shell-style ``128 + n``."""
    if returncode < 0:
        return 128 - returncode
    return returncode


class AgentExecutor:
    """Spawns one agent CLI per request and waits for its final answer.

    Output is read incrementally; the process is sent ``SIGTERM`` as soon as
    a final result is recognised, since some CLIs keep running after they
    have printed their answer.  Each call owns its own parser, buffer and
    deadline, so concurrent calls never share state.
    """

    def __init__(self, config: ExecutionConfig | None = None) -> None:
        self._config = config or ExecutionConfig()

    @property
    def config(self) -> ExecutionConfig:
        return self._config

    # ------------------------------------------------------------------ #
    # Command construction
    # ------------------------------------------------------------------ #

    def build_command(self, request: ExecutionRequest) -> list[str]:
        """Return the argument vector for *request*.

        The instruction and every extra argument are discrete items, so
        nothing in them is ever interpreted by a shell.
        """
        agent_type: AgentType = self._config.agent_type
        if self._config.command:
            head = shlex.split(self._config.command)
        else:
            head = [AGENT_BINARIES[agent_type]]

        instruction = format_instruction(request.agent, request.prompt)
        if agent_type == "codex":
            args = [*head, "exec", "--json", instruction]
        else:
            args = [*head, "--output-format", "json", "-p", instruction]

        args.extend(request.extra_args)

        if self._config.cli_api_key and agent_type in _API_KEY_FLAG_BACKENDS:
            args.extend(["-a", self._config.cli_api_key])

        return args

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    async def execute_agent(
        self, request: ExecutionRequest | None
    ) -> AgentExecutionResult:
        """Run *request* to completion, deadline or spawn failure.

        Raises:
            InvalidParametersError: If the request, agent context or prompt
                is missing or blank, or any argument contains a NUL byte.
                Nothing is spawned in that case.
        """
        request = _validate(request)

        request_id = uuid.uuid4().hex[:12]
        args = self.build_command(request)
        timeout_s = self._config.execution_timeout_ms / 1000
        start = time.monotonic()

        logger.info(
            "[%s] starting agent execution (%s, prompt %d chars, %d extra args)",
            request_id,
            self._config.agent_type,
            len(request.prompt),
            len(request.extra_args),
        )

        run = _Invocation(request_id, self._config.terminate_grace_seconds)

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=request.cwd,
            )
        except OSError as exc:
            logger.error("[%s] failed to spawn %s: %s", request_id, args[0], exc)
            return run.result(
                exit_code=SPAWN_ERROR_EXIT_CODE,
                stderr=str(exc),
                elapsed_ms=_elapsed_ms(start),
            )

        try:
            returncode = await asyncio.wait_for(run.supervise(proc), timeout=timeout_s)
        except TimeoutError:
            logger.warning(
                "[%s] execution timed out after %d ms (result captured: %s)",
                request_id,
                self._config.execution_timeout_ms,
                run.processor.has_result,
            )
            await run.terminate(proc)
            return run.result(
                exit_code=TIMEOUT_EXIT_CODE,
                stderr=run.stderr_text or _TIMEOUT_MESSAGE,
                elapsed_ms=_elapsed_ms(start),
            )
        finally:
            await run.cleanup(proc)

        result = run.result(
            exit_code=normalize_returncode(returncode),
            stderr=run.stderr_text,
            elapsed_ms=_elapsed_ms(start),
        )
        if result.stderr and not result.has_result:
            logger.warning(
                "[%s] agent exited with code %d: %s",
                request_id,
                result.exit_code,
                result.stderr[:1000],
            )
        else:
            logger.info(
                "[%s] agent execution completed (exit %d, %d ms, result: %s)",
                request_id,
                result.exit_code,
                result.execution_time,
                result.has_result,
            )
        return result


class _Invocation:
    """Mutable state of a single ``execute_agent`` call."""

    def __init__(self, request_id: str, grace_seconds: float) -> None:
        self.request_id = request_id
        self.processor = StreamProcessor()
        self._grace_seconds = grace_seconds
        self._buffer = LineBuffer()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._stdout_parts: list[str] = []
        self._stderr_parts: list[bytes] = []
        self._tasks: list[asyncio.Task[Any]] = []
        self._completed = asyncio.Event()
        self._terminated = False

    @property
    def stdout_text(self) -> str:
        return "".join(self._stdout_parts)

    @property
    def stderr_text(self) -> str:
        return b"".join(self._stderr_parts).decode(errors="replace")

    async def supervise(self, proc: asyncio.subprocess.Process) -> int:
        """Pump stdout/stderr until the answer arrives or the process exits."""
        stdout_task = asyncio.create_task(self._pump_stdout(proc))
        stderr_task = asyncio.create_task(self._pump_stderr(proc))
        completed = asyncio.create_task(self._completed.wait())
        exited = asyncio.create_task(_wait_exit(proc))
        self._tasks = [stdout_task, stderr_task, completed, exited]

        await asyncio.wait(
            {stdout_task, completed, exited}, return_when=asyncio.FIRST_COMPLETED
        )
        if self.processor.has_result:
            await self.terminate(proc)
        returncode = await _wait_exit(proc)

        # Grandchildren of the CLI may keep the pipes open after it exits.
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                asyncio.shield(asyncio.gather(stdout_task, stderr_task)),
                _DRAIN_WAIT,
            )
        return returncode

    async def _pump_stdout(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stdout is None:
            return
        while True:
            chunk = await proc.stdout.read(_READ_CHUNK)
            if not chunk:
                break
            text = self._decoder.decode(chunk)
            self._stdout_parts.append(text)
            for line in self._buffer.feed(text):
                if self.processor.process_line(line):
                    logger.debug(
                        "[%s] final result detected (%s)",
                        self.request_id,
                        self.processor.variant.value,
                    )
                    self._completed.set()
        self._stdout_parts.append(self._decoder.decode(b"", final=True))
        self._buffer.close()

    async def _pump_stderr(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stderr is None:
            return
        while True:
            chunk = await proc.stderr.read(_READ_CHUNK)
            if not chunk:
                return
            self._stderr_parts.append(chunk)

    async def terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM, then SIGKILL if the process outlives the grace period."""
        if proc.returncode is not None:
            return
        if not self._terminated:
            self._terminated = True
            logger.debug("[%s] sending SIGTERM to pid %s", self.request_id, proc.pid)
            with contextlib.suppress(ProcessLookupError):
                proc.send_signal(signal.SIGTERM)
        try:
            await asyncio.wait_for(_wait_exit(proc), timeout=self._grace_seconds)
        except TimeoutError:
            logger.warning(
                "[%s] pid %s ignored SIGTERM, sending SIGKILL",
                self.request_id,
                proc.pid,
            )
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await _wait_exit(proc)

    async def cleanup(self, proc: asyncio.subprocess.Process) -> None:
        for task in self._tasks:
            if not task.done():
                task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if proc.returncode is None:
            await self.terminate(proc)

    def result(
        self, *, exit_code: int, stderr: str, elapsed_ms: int
    ) -> AgentExecutionResult:
        if self.processor.has_result:
            stdout = json.dumps(self.processor.result, ensure_ascii=False)
        else:
            stdout = self.stdout_text
        return AgentExecutionResult(
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            execution_time=elapsed_ms,
            has_result=self.processor.has_result,
            result_json=copy.deepcopy(self.processor.result),
        )


def _validate(request: ExecutionRequest | None) -> ExecutionRequest:
    if request is None:
        msg = "Invalid execution parameters: request is required"
        raise InvalidParametersError(msg)
    if not request.agent or not request.agent.strip():
        msg = "Invalid execution parameters: agent context cannot be empty"
        raise InvalidParametersError(msg)
    if not request.prompt or not request.prompt.strip():
        msg = "Invalid execution parameters: prompt cannot be empty"
        raise InvalidParametersError(msg)
    if any("\x00" in arg for arg in (request.agent, request.prompt, *request.extra_args)):
        msg = "Invalid execution parameters: arguments cannot contain NUL bytes"
        raise InvalidParametersError(msg)
    return request


async def _wait_exit(proc: asyncio.subprocess.Process) -> int:
    """Return the exit status as soon as the child has been reaped.

    ``Process.wait()`` also waits for every pipe to close, which never
    happens while a grandchild of the agent still holds one open.
    """
    while proc.returncode is None:
        await asyncio.sleep(_EXIT_POLL)
    return proc.returncode


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
