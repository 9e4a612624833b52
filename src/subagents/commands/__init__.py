"""Click subcommands for the subagents CLI."""
