"""Pydantic v2 models for subagents configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from subagents.execution.models import (
    DEFAULT_EXECUTION_TIMEOUT_MS,
    DEFAULT_TERMINATE_GRACE_SECONDS,
    AgentType,
    ExecutionConfig,
)

LogLevel = Literal["debug", "info", "warn", "error"]

_LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class ServerConfig(BaseModel):
    """Top-level configuration, from subagents.yaml and the environment."""

    model_config = ConfigDict(extra="forbid")

    agents_dir: Path | None = Field(
        default=None,
        description="Directory containing agent definition files (.md / .txt)",
    )
    agent_type: AgentType = Field(
        default="cursor",
        description="Backend CLI used to run agents",
    )
    log_level: LogLevel = Field(default="info", description="Logging verbosity")
    execution_timeout_ms: int = Field(
        default=DEFAULT_EXECUTION_TIMEOUT_MS,
        gt=0,
        description="Wall-clock deadline per execution in milliseconds",
    )
    terminate_grace_seconds: float = Field(
        default=DEFAULT_TERMINATE_GRACE_SECONDS,
        ge=0,
        description="Seconds between SIGTERM and SIGKILL",
    )
    cli_api_key: str | None = Field(
        default=None,
        description="API key passed to backends that take one on the command line",
    )
    command: str | None = Field(
        default=None,
        description="Command line replacing the backend's default binary",
    )

    @field_validator("command")
    @classmethod
    def _command_not_blank(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def logging_level(self) -> int:
        return _LOG_LEVELS[self.log_level]

    def execution_config(self) -> ExecutionConfig:
        """Settings for ``AgentExecutor``."""
        return ExecutionConfig(
            agent_type=self.agent_type,
            execution_timeout_ms=self.execution_timeout_ms,
            cli_api_key=self.cli_api_key,
            command=self.command,
            terminate_grace_seconds=self.terminate_grace_seconds,
        )
