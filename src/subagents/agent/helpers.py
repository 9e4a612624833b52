"""Shared helper functions for presenting agent output."""

from __future__ import annotations

from typing import Any

from subagents.execution.models import AgentExecutionResult


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Extract and format the last N non-empty lines from stderr output."""
    lines = [line for line in stderr_text.split("\n") if line.strip()]
    last = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n  ".join(last)


def answer_text(result: AgentExecutionResult) -> str:
    """The agent's answer: the ``result`` string when one was captured."""
    payload: Any = result.result_json
    if isinstance(payload, dict):
        answer = payload.get("result")
        if isinstance(answer, str):
            return answer
    return result.stdout
