"""Server-sent-event demultiplexing for the Responses API stream.

The body interleaves three logical sub-streams (answer text, reasoning
narration, tool activity) plus terminal events.  ``EventDemultiplexer``
turns each body line into zero or more typed ``StreamEvent`` values.
"""

from __future__ import annotations

import json
import logging
from typing import Generator

from gotcha.types import (
    Completed,
    ReasoningDelta,
    StreamError,
    StreamEvent,
    TextDelta,
    ToolDelta,
)

_logger = logging.getLogger(__name__)

TEXT_EVENTS = frozenset({"response.output_text.delta"})
TOOL_EVENTS = frozenset({"response.tool_call.delta", "response.web_search_call.delta"})
REASONING_EVENTS = frozenset({"response.reasoning.delta", "response.summary.delta"})
COMPLETED_EVENT = "response.completed"
ERROR_EVENT = "error"

# Some server versions send these payloads without a dedicated event name.
_TOOL_MARKER = "web_search_call"
_REASONING_MARKERS = ("summary_text", '"type":"reasoning"')


def decode_delta(payload: str) -> str:
    """Decode a data payload into its delta text.

    A payload starting with ``{`` is parsed as JSON and its ``delta`` field
    returned (``""`` when absent).  Anything else, including JSON that
    fails to parse, is returned verbatim.
    """
    if not payload.startswith("{"):
        return payload
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return payload
    if not isinstance(data, dict):
        return payload
    delta = data.get("delta", "")
    if not isinstance(delta, str):
        return payload
    return delta


class EventDemultiplexer:
    """Line-oriented SSE scanner.

    The current event name is set by an ``event:`` line and persists for
    every following ``data:`` line until the next ``event:`` line.
    """

    def __init__(self) -> None:
        self.event = ""
        self.lines_seen = 0

    def feed(self, line: str) -> Generator[StreamEvent, None, None]:
        """Feed one body line.  Yields the events it carries."""
        self.lines_seen += 1
        if line.startswith("event:"):
            self.event = line[len("event:"):].strip()
            return
        if not line.startswith("data:"):
            return

        payload = line[len("data:"):].strip()
        completed = False

        if self.event in TEXT_EVENTS:
            delta = decode_delta(payload)
            if delta:
                yield TextDelta(delta)
        elif self.event in TOOL_EVENTS:
            yield ToolDelta(payload)
        elif self.event in REASONING_EVENTS:
            yield ReasoningDelta(decode_delta(payload))
        elif self.event == COMPLETED_EVENT:
            completed = True
        elif self.event == ERROR_EVENT:
            yield StreamError(payload)

        # Dual detection, independent of the event name.  A dual-detected
        # reasoning payload without delta text (item added/done envelopes)
        # is dropped so it cannot open an empty reasoning entry.
        if _TOOL_MARKER in payload:
            yield ToolDelta(payload)
        if any(marker in payload for marker in _REASONING_MARKERS):
            delta = decode_delta(payload)
            if delta:
                yield ReasoningDelta(delta)

        if completed:
            yield Completed()
