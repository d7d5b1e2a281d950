"""Reconstruct an ordered transcript from interleaved stream events.

Each of the three delta kinds (answer text, tool activity, reasoning) has
its own two-state machine:

  INACTIVE -> ACTIVE   on the first delta of that kind in a turn
  ACTIVE   -> ACTIVE   every later delta appends to the same entry
  *        -> INACTIVE when the turn ends (Completed, error or cancel)

An entry's position is fixed when it is created, so interleaved deltas of
other kinds never reorder the transcript.
"""

from __future__ import annotations

import enum
import json
import logging
import re
from typing import Any

from gotcha.llm.fallback import describe_stream_error
from gotcha.types import (
    ChatTurn,
    Completed,
    ReasoningDelta,
    Role,
    StreamError,
    StreamEvent,
    TextDelta,
    ToolDelta,
    TranscriptEntry,
)

_logger = logging.getLogger(__name__)

SEARCHING_PLACEHOLDER = "Searching…"
ERROR_MARKER = "(error) "
CANCELLED_MARKER = "(cancelled)"

_QUERY_SCAN = re.compile(r'"query"\s*:\s*"([^"]*)"')


class KindState(enum.Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"


# ---------------------------------------------------------------------------
# Tool query heuristic
# ---------------------------------------------------------------------------

def _find_query(value: Any) -> str:
    if isinstance(value, dict):
        for key, item in value.items():
            if key == "query" and isinstance(item, str) and item:
                return item
            found = _find_query(item)
            if found:
                return found
    elif isinstance(value, list):
        for item in value:
            found = _find_query(item)
            if found:
                return found
    return ""


def extract_query(payload: str) -> str:
    """Best-effort search query from a raw tool-call payload.

    This is a heuristic, not a decoder: tool payload shapes vary between
    server versions.  The JSON is searched recursively for a string
    ``query`` key, then the raw text is scanned for ``"query":"..."``.
    Returns ``""`` when nothing is found; callers show
    ``SEARCHING_PLACEHOLDER`` instead.
    """
    payload = payload.strip()
    if not payload:
        return ""
    if payload.startswith("{"):
        try:
            found = _find_query(json.loads(payload))
        except json.JSONDecodeError:
            found = ""
        if found:
            return found
    match = _QUERY_SCAN.search(payload)
    if match:
        return match.group(1)
    return ""


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------

class StreamReconciler:
    """Owns the transcript and applies stream events to it."""

    def __init__(self, entries: list[TranscriptEntry] | None = None) -> None:
        self.entries: list[TranscriptEntry] = list(entries or [])
        self._active: dict[Role, TranscriptEntry] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def state(self, role: Role) -> KindState:
        if role in self._active:
            return KindState.ACTIVE
        return KindState.INACTIVE

    def active(self, role: Role) -> TranscriptEntry | None:
        return self._active.get(role)

    def history(self) -> tuple[ChatTurn, ...]:
        """Prior turns for the next request (finalized entries only)."""
        return tuple(
            ChatTurn(role=e.role, text=e.text)
            for e in self.entries
            if e.role is Role.USER or e.final
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def begin_turn(self, prompt: str) -> TranscriptEntry:
        """Append the user's prompt and start a fresh turn."""
        self._active.clear()
        return self._append(Role.USER, prompt.strip(), final=True)

    def apply(self, event: StreamEvent) -> TranscriptEntry | None:
        """Apply one event; return the entry it touched, if any."""
        if isinstance(event, TextDelta):
            entry = self._activate(Role.ASSISTANT)
            entry.text += event.text
            return entry
        if isinstance(event, ReasoningDelta):
            entry = self._activate(Role.REASONING)
            entry.text += event.text
            return entry
        if isinstance(event, ToolDelta):
            return self._apply_tool(event.payload)
        if isinstance(event, Completed):
            self.complete()
            return None
        if isinstance(event, StreamError):
            return self.fail(describe_stream_error(event.payload))
        raise TypeError(f"unknown stream event: {event!r}")

    def complete(self) -> None:
        """Finalize every active entry and end the turn."""
        for entry in self._active.values():
            entry.final = True
        self._active.clear()

    def fail(self, message: str) -> TranscriptEntry:
        """Show *message* in the answer entry and end the turn."""
        _logger.debug("Turn failed: %s", message)
        entry = self._active.get(Role.ASSISTANT)
        if entry is None:
            entry = self._append(Role.ASSISTANT, ERROR_MARKER + message)
        else:
            entry.text += "\n" + ERROR_MARKER + message
        self._active.clear()
        return entry

    def cancel(self) -> None:
        """End an abandoned turn, marking its answer entry."""
        _logger.debug("Turn cancelled with %d active entries", len(self._active))
        entry = self._active.get(Role.ASSISTANT)
        if entry is not None:
            entry.text += "\n" + CANCELLED_MARKER
        self._active.clear()

    def clear(self) -> None:
        self.entries.clear()
        self._active.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _append(self, role: Role, text: str = "", final: bool = False) -> TranscriptEntry:
        entry = TranscriptEntry(role=role, text=text, index=len(self.entries), final=final)
        self.entries.append(entry)
        return entry

    def _activate(self, role: Role) -> TranscriptEntry:
        entry = self._active.get(role)
        if entry is None:
            entry = self._append(role)
            self._active[role] = entry
        return entry

    def _apply_tool(self, payload: str) -> TranscriptEntry:
        query = extract_query(payload)
        entry = self._active.get(Role.TOOL)
        if entry is None:
            entry = self._activate(Role.TOOL)
            entry.text = query or SEARCHING_PLACEHOLDER
        elif query:
            entry.text = query
        entry.raw.append(payload)
        return entry
