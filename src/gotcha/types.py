"""Shared data types for gotcha."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Union


# ---------------------------------------------------------------------------
# Conversation types
# ---------------------------------------------------------------------------

class Role(str, enum.Enum):
    """Speaker of a transcript entry."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    REASONING = "reasoning"


@dataclass(frozen=True)
class ChatTurn:
    """One prior turn of the conversation."""

    role: Role
    text: str


@dataclass(frozen=True)
class ChatRequest:
    """Provider-independent chat request.  Immutable once built."""

    prompt: str
    system: str = ""
    history: tuple[ChatTurn, ...] = ()
    model: str = ""
    max_tokens: int = 0
    temperature: float = 0.0
    stop: tuple[str, ...] = ()
    tools: tuple[dict[str, Any], ...] = ()
    tool_choice: str = ""
    include: tuple[str, ...] = ()
    reasoning_effort: str = ""  # low | medium | high
    reasoning_summary: str = ""  # auto | concise | detailed


@dataclass
class LLMResponse:
    """Final result of one logical ``complete()`` call."""

    text: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    streamed: bool = False
    fell_back: bool = False
    latency_ms: float = 0


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextDelta:
    """A fragment of answer text."""

    text: str


@dataclass(frozen=True)
class ToolDelta:
    """Raw, undecoded tool-call payload (e.g. a web search in progress)."""

    payload: str


@dataclass(frozen=True)
class ReasoningDelta:
    """A fragment of reasoning / summary narration."""

    text: str


@dataclass(frozen=True)
class Completed:
    """The server finished the response."""


@dataclass(frozen=True)
class StreamError:
    """The server reported an error inside the stream."""

    payload: str


StreamEvent = Union[TextDelta, ToolDelta, ReasoningDelta, Completed, StreamError]


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------

@dataclass
class TranscriptEntry:
    """A rendered line of the conversation.

    ``index`` is the position the entry took when it first appeared and
    never changes afterwards.  ``raw`` holds tool payloads as received.
    """

    role: Role
    text: str = ""
    index: int = 0
    raw: list[str] = field(default_factory=list)
    final: bool = False


# ---------------------------------------------------------------------------
# Session events
# ---------------------------------------------------------------------------

class EventType(enum.Enum):
    """Events published by a chat session."""

    TURN_STARTED = "turn.started"
    TURN_UPDATED = "turn.updated"
    TURN_DONE = "turn.done"
    TURN_ERROR = "turn.error"
    TURN_CANCELLED = "turn.cancelled"


@dataclass
class SessionEvent:
    """Event emitted by a ``ChatSession`` via the EventBus."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
