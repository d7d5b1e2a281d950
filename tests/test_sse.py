"""Tests for SSE demultiplexing."""

from __future__ import annotations

import pytest

from gotcha.llm.sse import EventDemultiplexer, decode_delta
from gotcha.types import (
    Completed,
    ReasoningDelta,
    StreamError,
    TextDelta,
    ToolDelta,
)


def _feed(*lines: str) -> list:
    demux = EventDemultiplexer()
    events = []
    for line in lines:
        events.extend(demux.feed(line))
    return events


class TestDecodeDelta:
    def test_json_delta(self):
        assert decode_delta('{"delta":"Hi"}') == "Hi"

    def test_raw_string(self):
        assert decode_delta("plain words") == "plain words"

    def test_json_without_delta(self):
        assert decode_delta('{"type":"x"}') == ""

    def test_malformed_json_is_literal(self):
        assert decode_delta('{"delta": "oops') == '{"delta": "oops'

    def test_non_string_delta_is_literal(self):
        assert decode_delta('{"delta": 5}') == '{"delta": 5}'


class TestDispatch:
    def test_text_delta(self):
        events = _feed(
            "event: response.output_text.delta",
            'data: {"delta":"Hi"}',
        )
        assert events == [TextDelta("Hi")]

    def test_empty_text_delta_dropped(self):
        events = _feed(
            "event: response.output_text.delta",
            'data: {"delta":""}',
        )
        assert events == []

    def test_event_name_persists_across_data_lines(self):
        events = _feed(
            "event: response.output_text.delta",
            'data: {"delta":"a"}',
            "",
            'data: {"delta":"b"}',
            "data:c",
        )
        assert events == [TextDelta("a"), TextDelta("b"), TextDelta("c")]

    @pytest.mark.parametrize(
        "name", ["response.tool_call.delta", "response.web_search_call.delta"],
    )
    def test_tool_delta_keeps_raw_payload(self, name: str):
        events = _feed(f"event: {name}", 'data: {"delta":{"q":"x"}}')
        assert events == [ToolDelta('{"delta":{"q":"x"}}')]

    @pytest.mark.parametrize(
        "name", ["response.reasoning.delta", "response.summary.delta"],
    )
    def test_reasoning_delta(self, name: str):
        events = _feed(f"event: {name}", 'data: {"delta":"hmm"}')
        assert events == [ReasoningDelta("hmm")]

    def test_completed(self):
        events = _feed("event: response.completed", 'data: {"type":"done"}')
        assert events == [Completed()]

    def test_error(self):
        payload = '{"error":{"message":"stream not allowed"}}'
        events = _feed("event: error", f"data: {payload}")
        assert events == [StreamError(payload)]

    def test_unrelated_lines_ignored(self):
        events = _feed(": keep-alive", "id: 7", "retry: 100", "", "data: orphan")
        assert events == []


class TestDualDetection:
    def test_web_search_payload_without_event_name(self):
        payload = '{"type":"web_search_call","action":{"query":"news"}}'
        events = _feed("event: response.output_item.added", f"data: {payload}")
        assert events == [ToolDelta(payload)]

    def test_named_tool_event_with_marker_yields_twice(self):
        payload = '{"type":"web_search_call","query":"x"}'
        events = _feed("event: response.web_search_call.delta", f"data: {payload}")
        assert events == [ToolDelta(payload), ToolDelta(payload)]

    def test_summary_text_payload(self):
        events = _feed(
            "event: response.reasoning_summary_text.delta",
            'data: {"type":"response.reasoning_summary_text.delta","delta":"Let me"}',
        )
        assert events == [ReasoningDelta("Let me")]

    def test_reasoning_type_marker(self):
        events = _feed(
            "event: response.output_item.added",
            'data: {"type":"reasoning","delta":"plan"}',
        )
        assert events == [ReasoningDelta("plan")]

    def test_empty_dual_reasoning_dropped(self):
        events = _feed(
            "event: response.output_item.done",
            'data: {"item":{"type":"reasoning","summary":[]}}',
        )
        assert events == []

    def test_completed_emitted_after_dual_detections(self):
        payload = '{"response":{"output":[{"type":"web_search_call"}]}}'
        events = _feed("event: response.completed", f"data: {payload}")
        assert events == [ToolDelta(payload), Completed()]
