"""subagents run — delegate one task to an agent CLI and print its answer."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click

from subagents.agent.helpers import answer_text, format_stderr_preview
from subagents.agent.registry import (
    AgentNameError,
    AgentRegistry,
    AgentsDirectoryError,
)
from subagents.config.models import ServerConfig
from subagents.config.parser import ConfigError, load_config
from subagents.execution.errors import InvalidParametersError
from subagents.execution.executor import AgentExecutor
from subagents.execution.models import AgentExecutionResult, ExecutionRequest

logger = logging.getLogger(__name__)


@click.command()
@click.argument("agent")
@click.argument("prompt")
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option(
    "--cwd",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Working directory for the agent process.",
)
@click.option(
    "--arg",
    "extra_args",
    multiple=True,
    help="Extra argument passed to the agent CLI (repeatable).",
)
@click.option(
    "--agent-type",
    type=click.Choice(["cursor", "claude", "gemini", "codex"]),
    default=None,
    help="Override the configured backend.",
)
@click.option(
    "--timeout-ms",
    type=click.IntRange(min=1),
    default=None,
    help="Override the execution deadline in milliseconds.",
)
@click.option(
    "--json", "as_json", is_flag=True, help="Print the full result record as JSON."
)
def run(
    agent: str,
    prompt: str,
    config_file: str | None,
    cwd: str | None,
    extra_args: tuple[str, ...],
    agent_type: str | None,
    timeout_ms: int | None,
    as_json: bool,
) -> None:
    """Run AGENT on PROMPT and print the agent's answer."""
    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    overrides: dict[str, object] = {}
    if agent_type is not None:
        overrides["agent_type"] = agent_type
    if timeout_ms is not None:
        overrides["execution_timeout_ms"] = timeout_ms
    if overrides:
        config = config.model_copy(update=overrides)

    _configure_logging(config)

    agent_context = _resolve_agent_context(config, agent)
    request = ExecutionRequest(
        agent=agent_context,
        prompt=prompt,
        cwd=cwd,
        extra_args=list(extra_args),
    )

    executor = AgentExecutor(config.execution_config())
    try:
        result = asyncio.run(executor.execute_agent(request))
    except InvalidParametersError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    _report(agent, result, as_json)


def _configure_logging(config: ServerConfig) -> None:
    logging.basicConfig(
        level=config.logging_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _resolve_agent_context(config: ServerConfig, agent: str) -> str:
    """Definition content for *agent*, or *agent* itself without a registry."""
    if config.agents_dir is None:
        return agent

    registry = AgentRegistry(config.agents_dir)
    try:
        definition = registry.get_agent(agent)
        if definition is None:
            available = ", ".join(a.name for a in registry.list_agents()) or "none"
            click.echo(
                f"Error: Agent '{agent}' not found. Available agents: {available}",
                err=True,
            )
            raise SystemExit(1)
    except (AgentNameError, AgentsDirectoryError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    logger.debug("Resolved agent '%s' from %s", agent, definition.file_path)
    return definition.content


def _report(agent: str, result: AgentExecutionResult, as_json: bool) -> None:
    if as_json:
        click.echo(result.model_dump_json(indent=2))
    elif result.succeeded:
        click.echo(answer_text(result))

    if result.succeeded:
        return

    if result.timed_out:
        error_msg = f"Agent '{agent}' timed out."
    else:
        error_msg = f"Agent '{agent}' exited with code {result.exit_code}."
    stderr_preview = format_stderr_preview(result.stderr)
    if stderr_preview:
        error_msg += f" Stderr:\n  {stderr_preview}"
    click.echo(error_msg, err=True)
    raise SystemExit(result.exit_code or 1)
