"""Pydantic v2 models for execution requests and results."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

#: Backends the executor knows how to invoke.
AgentType = Literal["cursor", "claude", "gemini", "codex"]

#: Default wall-clock deadline for one invocation (5 minutes).
DEFAULT_EXECUTION_TIMEOUT_MS = 300_000

#: Seconds to wait after SIGTERM before SIGKILL.
DEFAULT_TERMINATE_GRACE_SECONDS = 3.0


class ExecutionRequest(BaseModel):
    """A single task to hand to an external agent."""

    model_config = ConfigDict(extra="forbid")

    agent: str = Field(
        description="Agent context: definition content sent as system context",
    )
    prompt: str = Field(description="The user's task")
    cwd: str | None = Field(
        default=None,
        description="Working directory for the agent process",
    )
    extra_args: list[str] = Field(
        default_factory=list,
        description="Additional arguments passed to the agent binary",
    )


class ExecutionConfig(BaseModel):
    """Settings consumed by ``AgentExecutor``."""

    model_config = ConfigDict(extra="forbid")

    agent_type: AgentType = "cursor"
    execution_timeout_ms: int = Field(default=DEFAULT_EXECUTION_TIMEOUT_MS, gt=0)
    cli_api_key: str | None = Field(
        default=None,
        description="Sent with -a to backends that authenticate by flag",
    )
    command: str | None = Field(
        default=None,
        description="Explicit command line replacing the backend binary",
    )
    terminate_grace_seconds: float = Field(
        default=DEFAULT_TERMINATE_GRACE_SECONDS,
        ge=0,
    )


class AgentExecutionResult(BaseModel):
    """Normalized outcome of one agent invocation.

    ``exit_code`` follows a fixed contract: ``0`` success, ``124`` deadline
    exceeded, ``143`` terminated after the final answer was captured (a
    success when ``has_result`` is true), anything else a process failure.
    """

    model_config = ConfigDict(frozen=True)

    stdout: str
    stderr: str
    exit_code: int
    execution_time: int = Field(description="Wall-clock time in milliseconds")
    has_result: bool = False
    result_json: Any = None

    @property
    def timed_out(self) -> bool:
        return self.exit_code == 124

    @property
    def succeeded(self) -> bool:
        """True when a final answer was captured or the process exited cleanly."""
        return self.has_result or self.exit_code == 0
