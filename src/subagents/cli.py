"""Root CLI group and version flag."""

import click

from subagents import __version__
from subagents.commands.agents import agents
from subagents.commands.run import run


@click.group()
@click.version_option(version=__version__, prog_name="subagents")
def cli() -> None:
    """Subagents — delegate tasks to external AI command-line agents."""


cli.add_command(run)
cli.add_command(agents)
