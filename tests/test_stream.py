"""Tests for the agent output protocol state machine."""

from __future__ import annotations

import copy
import json
from typing import Any

import pytest

from subagents.execution.line_buffer import LineBuffer
from subagents.execution.stream import (
    ProtocolState,
    ProtocolVariant,
    ResultLatch,
    StreamProcessor,
    process_line,
)


def _line(obj: Any) -> str:
    return json.dumps(obj)


def _snapshot(state: ProtocolState) -> tuple[Any, ...]:
    return (
        state.result.is_set,
        copy.deepcopy(state.result.value),
        state.variant,
        list(state.fragments),
        copy.deepcopy(state.payload),
    )


# ------------------------------------------------------------------ #
# Result latch
# ------------------------------------------------------------------ #


class TestResultLatch:
    def test_starts_empty(self) -> None:
        latch = ResultLatch()
        assert latch.is_set is False
        assert latch.value is None

    def test_first_write_wins(self) -> None:
        latch = ResultLatch()
        assert latch.set({"a": 1}) is True
        assert latch.set({"b": 2}) is False
        assert latch.value == {"a": 1}

    def test_none_is_a_valid_value(self) -> None:
        latch = ResultLatch()
        assert latch.set(None) is True
        assert latch.is_set is True
        assert latch.set("later") is False
        assert latch.value is None


# ------------------------------------------------------------------ #
# Plain variant
# ------------------------------------------------------------------ #


class TestPlainVariant:
    def test_result_line_completes_verbatim(self) -> None:
        processor = StreamProcessor()
        event = {"type": "result", "result": "4", "duration_ms": 1200}

        assert processor.process_line(_line(event)) is True
        assert processor.result == event
        assert processor.variant is ProtocolVariant.PLAIN

    def test_one_shot(self) -> None:
        processor = StreamProcessor()
        first = {"type": "result", "result": "4"}
        processor.process_line(_line(first))

        assert processor.process_line(_line({"type": "result", "result": "5"})) is False
        assert processor.process_line(_line({"other": True})) is False
        assert processor.result == first

    def test_non_result_lines_before_result_ignored(self) -> None:
        processor = StreamProcessor()
        assert processor.process_line(_line({"type": "system", "subtype": "x"})) is False
        assert processor.process_line(_line({"type": "assistant"})) is False
        assert processor.has_result is False
        assert processor.variant is ProtocolVariant.UNDETERMINED

        assert processor.process_line(_line({"type": "result", "result": "ok"})) is True
        assert processor.result == {"type": "result", "result": "ok"}


# ------------------------------------------------------------------ #
# Streaming accumulator (init / message / result)
# ------------------------------------------------------------------ #


class TestStreamingAccumulator:
    def test_concatenates_assistant_deltas(self) -> None:
        processor = StreamProcessor()
        lines = [
            {"type": "init", "session_id": "abc", "model": "gemini-2.5-pro"},
            {"type": "message", "role": "user", "content": "Hi"},
            {"type": "message", "role": "assistant", "content": "Hello! ", "delta": True},
            {
                "type": "message",
                "role": "assistant",
                "content": "How can I help you?",
                "delta": True,
            },
        ]
        for obj in lines:
            assert processor.process_line(_line(obj)) is False

        assert processor.variant is ProtocolVariant.STREAMING_ACCUMULATOR

        stats = {"total_tokens": 42, "duration_ms": 900}
        done = processor.process_line(
            _line({"type": "result", "status": "success", "stats": stats})
        )

        assert done is True
        assert processor.result == {
            "type": "result",
            "result": "Hello! How can I help you?",
            "stats": stats,
            "status": "success",
        }

    def test_missing_stats_and_status_are_not_invented(self) -> None:
        processor = StreamProcessor()
        processor.process_line(_line({"type": "init"}))
        processor.process_line(
            _line({"type": "message", "role": "assistant", "content": "x"})
        )
        processor.process_line(_line({"type": "result"}))

        assert processor.result == {"type": "result", "result": "x"}

    def test_non_string_content_ignored(self) -> None:
        processor = StreamProcessor()
        processor.process_line(_line({"type": "init"}))
        processor.process_line(
            _line({"type": "message", "role": "assistant", "content": ["a", "b"]})
        )
        processor.process_line(
            _line({"type": "message", "role": "assistant", "content": "ok"})
        )
        processor.process_line(_line({"type": "result", "status": "success"}))

        assert processor.result["result"] == "ok"

    def test_untyped_object_does_not_complete_once_latched(self) -> None:
        processor = StreamProcessor()
        processor.process_line(_line({"type": "init"}))

        assert processor.process_line(_line({"foo": "bar"})) is False
        assert processor.has_result is False

    def test_tool_lines_ignored(self) -> None:
        processor = StreamProcessor()
        processor.process_line(_line({"type": "init"}))
        processor.process_line(_line({"type": "tool_use", "tool_name": "ls"}))
        processor.process_line(_line({"type": "tool_result", "output": "a b"}))
        processor.process_line(
            _line({"type": "message", "role": "assistant", "content": "Done"})
        )
        processor.process_line(_line({"type": "result", "status": "success"}))

        assert processor.result["result"] == "Done"


# ------------------------------------------------------------------ #
# Event accumulator (thread.started / item.completed / turn.completed)
# ------------------------------------------------------------------ #


class TestEventAccumulator:
    def test_only_agent_messages_accumulate(self) -> None:
        processor = StreamProcessor()
        lines = [
            {"type": "thread.started", "thread_id": "t-1"},
            {"type": "turn.started"},
            {
                "type": "item.completed",
                "item": {"id": "0", "type": "reasoning", "text": "Thinking about files"},
            },
            {
                "type": "item.completed",
                "item": {"id": "1", "type": "agent_message", "text": "Files: file1, file2"},
            },
            {
                "type": "item.completed",
                "item": {
                    "id": "2",
                    "type": "command_execution",
                    "command": "ls",
                    "aggregated_output": "file1\nfile2",
                },
            },
            {
                "type": "item.completed",
                "item": {"id": "3", "type": "agent_message", "text": "Done"},
            },
        ]
        for obj in lines:
            assert processor.process_line(_line(obj)) is False

        assert processor.variant is ProtocolVariant.EVENT_ACCUMULATOR

        usage = {"input_tokens": 500, "output_tokens": 50}
        assert processor.process_line(_line({"type": "turn.completed", "usage": usage}))

        assert processor.result == {
            "type": "result",
            "result": "Files: file1, file2\nDone",
            "usage": usage,
            "status": "success",
        }
        assert "Thinking" not in processor.result["result"]
        assert "ls" not in processor.result["result"]

    def test_item_started_does_not_accumulate(self) -> None:
        processor = StreamProcessor()
        processor.process_line(_line({"type": "thread.started"}))
        processor.process_line(
            _line({"type": "item.started", "item": {"type": "agent_message", "text": "x"}})
        )
        processor.process_line(_line({"type": "turn.completed"}))

        assert processor.result == {"type": "result", "result": "", "status": "success"}

    def test_result_line_ignored_in_event_mode(self) -> None:
        processor = StreamProcessor()
        processor.process_line(_line({"type": "thread.started"}))

        assert processor.process_line(_line({"type": "result", "result": "x"})) is False
        assert processor.has_result is False

    def test_later_marker_does_not_switch_variant(self) -> None:
        processor = StreamProcessor()
        processor.process_line(_line({"type": "thread.started"}))
        processor.process_line(_line({"type": "init"}))

        assert processor.variant is ProtocolVariant.EVENT_ACCUMULATOR


# ------------------------------------------------------------------ #
# Untyped fallback
# ------------------------------------------------------------------ #


class TestUntypedFallback:
    def test_bare_object_completes_verbatim(self) -> None:
        processor = StreamProcessor()
        assert processor.process_line('{"foo":"bar"}') is True
        assert processor.result == {"foo": "bar"}

    def test_later_lines_ignored(self) -> None:
        processor = StreamProcessor()
        processor.process_line('{"foo":"bar"}')

        assert processor.process_line(_line({"type": "result", "result": "x"})) is False
        assert processor.process_line('{"baz": 1}') is False
        assert processor.result == {"foo": "bar"}


# ------------------------------------------------------------------ #
# Malformed input
# ------------------------------------------------------------------ #


class TestMalformedInput:
    @pytest.mark.parametrize(
        "line",
        [
            "",
            "   ",
            "\t\r",
            "not json",
            "{broken",
            '{"type": "result", ',
            "Loading model...",
            "42",
            '"a string"',
            "[1, 2, 3]",
            "null",
        ],
    )
    def test_inert(self, line: str) -> None:
        state = ProtocolState()
        before = _snapshot(state)

        assert process_line(state, line) is False
        assert _snapshot(state) == before

    def test_inert_mid_stream(self) -> None:
        state = ProtocolState()
        process_line(state, _line({"type": "init"}))
        process_line(
            state, _line({"type": "message", "role": "assistant", "content": "a"})
        )
        before = _snapshot(state)

        assert process_line(state, "garbage {") is False
        assert process_line(state, "") is False
        assert _snapshot(state) == before

    def test_surrounding_whitespace_tolerated(self) -> None:
        processor = StreamProcessor()
        assert processor.process_line('   {"type": "result", "result": "x"}\r') is True


# ------------------------------------------------------------------ #
# Idempotence after completion
# ------------------------------------------------------------------ #


class TestIdempotence:
    @pytest.mark.parametrize(
        "lines",
        [
            [{"type": "result", "result": "a"}],
            [{"foo": "bar"}],
            [
                {"type": "init"},
                {"type": "message", "role": "assistant", "content": "a"},
                {"type": "result", "status": "success"},
            ],
            [
                {"type": "thread.started"},
                {"type": "item.completed", "item": {"type": "agent_message", "text": "a"}},
                {"type": "turn.completed", "usage": {}},
            ],
        ],
    )
    def test_no_mutation_after_completion(self, lines: list[dict[str, Any]]) -> None:
        state = ProtocolState()
        results = [process_line(state, _line(obj)) for obj in lines]
        assert results[-1] is True
        assert not any(results[:-1])

        before = _snapshot(state)
        followups = [
            {"type": "message", "role": "assistant", "content": "late"},
            {"type": "item.completed", "item": {"type": "agent_message", "text": "late"}},
            {"type": "result", "result": "late"},
            {"type": "turn.completed"},
            {"late": True},
        ]
        for obj in followups:
            assert process_line(state, _line(obj)) is False
        assert _snapshot(state) == before


# ------------------------------------------------------------------ #
# Line buffer feeding the state machine
# ------------------------------------------------------------------ #


class TestLineBufferIntegration:
    def test_result_split_across_chunks(self) -> None:
        buffer = LineBuffer()
        processor = StreamProcessor()
        chunks = ['{"type": "in', 'it"}\n{"type": "message", "role": "assis', "tant", '", "content": "Hel', 'lo"}\n{"type":"result"}', "\n"]

        completed = []
        for chunk in chunks:
            for line in buffer.feed(chunk):
                completed.append(processor.process_line(line))

        assert completed == [False, False, True]
        assert processor.result == {"type": "result", "result": "Hello"}
