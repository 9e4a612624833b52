"""Protocol state machine for agent CLI JSON output.

Backends print line-oriented JSON on stdout in one of three shapes:

* **plain** (``cursor-agent`` / ``claude --output-format json``) — a single
  ``{"type": "result", ...}`` object that *is* the answer.
* **streaming accumulator** (``gemini``) — an ``init`` marker, assistant
  ``message`` deltas, then a ``result`` line with ``stats`` / ``status``.
* **event accumulator** (``codex exec --json``) — a ``thread.started``
  marker, ``item.completed`` events (only ``agent_message`` items carry the
  answer), then ``turn.completed`` with ``usage``.

An object with no ``type`` field at all is accepted as the answer when no
variant has been detected, for CLIs that print one bare JSON object.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

_STREAMING_MARKER = "init"
_EVENT_MARKER = "thread.started"


class ProtocolVariant(enum.Enum):
    """Wire format detected for one invocation."""

    UNDETERMINED = "undetermined"
    PLAIN = "plain"
    STREAMING_ACCUMULATOR = "streaming-accumulator"
    EVENT_ACCUMULATOR = "event-accumulator"


class ResultLatch:
    """Write-once cell holding the final structured result.

    The first ``set()`` wins; every later call is a no-op returning ``False``.
    """

    __slots__ = ("_is_set", "_value")

    def __init__(self) -> None:
        self._is_set = False
        self._value: Any = None

    @property
    def is_set(self) -> bool:
        return self._is_set

    @property
    def value(self) -> Any:
        return self._value

    def set(self, value: Any) -> bool:
        if self._is_set:
            return False
        self._value = value
        self._is_set = True
        return True


@dataclass
class ProtocolState:
    """Per-invocation parser state.  Never shared between invocations."""

    result: ResultLatch = field(default_factory=ResultLatch)
    variant: ProtocolVariant = ProtocolVariant.UNDETERMINED
    fragments: list[str] = field(default_factory=list)
    payload: dict[str, Any] | None = None


def process_line(state: ProtocolState, line: str) -> bool:
    """Feed one complete line into *state*.

    Returns ``True`` exactly once: for the line that produced the final
    result.  After that every call returns ``False`` and leaves *state*
    untouched.  Blank lines, non-JSON lines and JSON values that are not
    objects are ignored.
    """
    if state.result.is_set:
        return False

    text = line.strip()
    if not text:
        return False

    try:
        event = json.loads(text)
    except json.JSONDecodeError:
        logger.debug("ignoring non-JSON output line: %s", text[:200])
        return False

    if not isinstance(event, dict):
        return False

    event_type = event.get("type")

    match state.variant:
        case ProtocolVariant.UNDETERMINED:
            return _process_undetermined(state, event, event_type)
        case ProtocolVariant.STREAMING_ACCUMULATOR:
            return _process_streaming(state, event, event_type)
        case ProtocolVariant.EVENT_ACCUMULATOR:
            return _process_event(state, event, event_type)
    return False


def _process_undetermined(
    state: ProtocolState, event: dict[str, Any], event_type: object
) -> bool:
    if event_type == _STREAMING_MARKER:
        state.variant = ProtocolVariant.STREAMING_ACCUMULATOR
        return False

    if event_type == _EVENT_MARKER:
        state.variant = ProtocolVariant.EVENT_ACCUMULATOR
        return False

    # Discriminated result, or a bare object with no envelope at all.
    if event_type == "result" or "type" not in event:
        state.variant = ProtocolVariant.PLAIN
        return state.result.set(event)

    return False


def _process_streaming(
    state: ProtocolState, event: dict[str, Any], event_type: object
) -> bool:
    if event_type == "message":
        content = event.get("content")
        if event.get("role") == "assistant" and isinstance(content, str):
            state.fragments.append(content)
        return False

    if event_type != "result":
        return False

    state.payload = {key: event[key] for key in ("stats", "status") if key in event}
    return state.result.set(
        {"type": "result", "result": "".join(state.fragments), **state.payload}
    )


def _process_event(
    state: ProtocolState, event: dict[str, Any], event_type: object
) -> bool:
    if event_type == "item.completed":
        item = event.get("item")
        if isinstance(item, dict) and item.get("type") == "agent_message":
            text = item.get("text")
            if isinstance(text, str):
                state.fragments.append(text)
        return False

    if event_type != "turn.completed":
        return False

    state.payload = {"usage": event["usage"]} if "usage" in event else {}
    return state.result.set(
        {
            "type": "result",
            "result": "\n".join(state.fragments),
            **state.payload,
            "status": "success",
        }
    )


class StreamProcessor:
    """Stateful wrapper around :func:`process_line` for one invocation."""

    def __init__(self) -> None:
        self._state = ProtocolState()

    @property
    def state(self) -> ProtocolState:
        return self._state

    @property
    def variant(self) -> ProtocolVariant:
        return self._state.variant

    @property
    def has_result(self) -> bool:
        return self._state.result.is_set

    @property
    def result(self) -> Any:
        """The final structured result, or ``None`` until one is detected."""
        return self._state.result.value

    def process_line(self, line: str) -> bool:
        return process_line(self._state, line)
