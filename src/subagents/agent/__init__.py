"""Agent definitions and output helpers."""

from subagents.agent.helpers import answer_text, format_stderr_preview
from subagents.agent.registry import (
    AgentDefinition,
    AgentNameError,
    AgentRegistry,
    AgentsDirectoryError,
    validate_agent_name,
)

__all__ = [
    "AgentDefinition",
    "AgentNameError",
    "AgentRegistry",
    "AgentsDirectoryError",
    "answer_text",
    "format_stderr_preview",
    "validate_agent_name",
]
