"""subagents — delegate tasks to external AI command-line agents."""

__version__ = "0.1.0"
