"""Agent execution engine: subprocess supervision and output parsing."""

from subagents.execution.errors import InvalidParametersError
from subagents.execution.executor import AGENT_BINARIES, AgentExecutor, format_instruction
from subagents.execution.line_buffer import LineBuffer
from subagents.execution.models import (
    AgentExecutionResult,
    AgentType,
    ExecutionConfig,
    ExecutionRequest,
)
from subagents.execution.stream import (
    ProtocolState,
    ProtocolVariant,
    ResultLatch,
    StreamProcessor,
    process_line,
)

__all__ = [
    "AGENT_BINARIES",
    "AgentExecutionResult",
    "AgentExecutor",
    "AgentType",
    "ExecutionConfig",
    "ExecutionRequest",
    "InvalidParametersError",
    "LineBuffer",
    "ProtocolState",
    "ProtocolVariant",
    "ResultLatch",
    "StreamProcessor",
    "format_instruction",
    "process_line",
]
