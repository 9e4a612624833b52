"""subagents agents — list the agent definitions that can be run."""

from __future__ import annotations

from pathlib import Path

import click

from subagents.agent.registry import AgentRegistry, AgentsDirectoryError
from subagents.config.parser import ConfigError, load_config


@click.command()
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
def agents(config_file: str | None) -> None:
    """List agent definitions in the configured agents directory."""
    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    if config.agents_dir is None:
        click.echo(
            "Error: No agents directory configured. "
            "Set AGENTS_DIR or agents_dir in subagents.yaml.",
            err=True,
        )
        raise SystemExit(1)

    try:
        definitions = AgentRegistry(config.agents_dir).list_agents()
    except AgentsDirectoryError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    if not definitions:
        click.echo(f"No agent definitions found in {config.agents_dir}")
        return

    width = max(len(d.name) for d in definitions)
    for definition in definitions:
        click.echo(f"{definition.name:<{width}}  {definition.description}")
