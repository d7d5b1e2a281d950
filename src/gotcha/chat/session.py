"""Chat session — runs one streaming turn at a time.

    prompt → producer task → bounded queue → reconciler → EventBus

The producer task owns the HTTP call and pushes ``StreamEvent`` values
into a bounded queue; a single-slot queue carries at most one terminal
error.  The consumer takes one item at a time, applies it to the
transcript and re-arms its wait, so arrival order is preserved and a slow
consumer blocks the producer instead of growing a buffer.

Cancellation: the session owns the producer.  Starting a new turn,
calling ``cancel()`` or closing the turn iterator early cancels the
producer, discards whatever it had queued and marks the abandoned answer
with ``(cancelled)``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator

from gotcha.chat.reconciler import StreamReconciler
from gotcha.events.bus import EventBus
from gotcha.llm.client import AsyncResponsesClient
from gotcha.types import (
    ChatRequest,
    Completed,
    EventType,
    LLMResponse,
    SessionEvent,
    StreamEvent,
    TextDelta,
    TranscriptEntry,
)

_logger = logging.getLogger(__name__)

# Tolerates brief consumer stalls before the producer blocks
EVENT_QUEUE_SIZE = 128

WEB_SEARCH_TOOLS: tuple[dict[str, Any], ...] = ({"type": "web_search"},)
WEB_SEARCH_INCLUDE = ("web_search_call.action.sources",)

_CLOSED = object()
_CANCELLED = object()


@dataclass
class _Turn:
    request: ChatRequest
    events: asyncio.Queue = field(
        default_factory=lambda: asyncio.Queue(maxsize=EVENT_QUEUE_SIZE),
    )
    errors: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=1))
    producer: asyncio.Task | None = None
    response: LLMResponse | None = None
    finished: bool = False


class ChatSession:
    """A conversation with at most one in-flight turn.

    Parameters
    ----------
    client:
        Responses API client used for every turn.
    system:
        System instructions sent with each request.
    event_bus:
        Bus receiving ``SessionEvent`` updates (optional).
    stream:
        If False, each turn is sent non-streaming and its answer delivered
        as one text delta.
    web_search:
        Offer the ``web_search`` tool to the model.
    """

    def __init__(
        self,
        client: AsyncResponsesClient,
        *,
        system: str = "",
        event_bus: EventBus | None = None,
        model: str = "",
        max_tokens: int = 0,
        temperature: float = 0.0,
        reasoning_effort: str = "",
        reasoning_summary: str = "",
        web_search: bool = True,
        stream: bool = True,
    ) -> None:
        self._client = client
        self._bus = event_bus or EventBus()
        self.system = system
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.reasoning_effort = reasoning_effort
        self.reasoning_summary = reasoning_summary
        self.web_search = web_search
        self.stream = stream
        self.reconciler = StreamReconciler()
        self._turn: _Turn | None = None
        self.last_response: LLMResponse | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def entries(self) -> list[TranscriptEntry]:
        return self.reconciler.entries

    @property
    def busy(self) -> bool:
        return self._turn is not None and not self._turn.finished

    def build_request(self, prompt: str) -> ChatRequest:
        """Build the request for *prompt* from the current transcript."""
        tools: tuple[dict[str, Any], ...] = ()
        include: tuple[str, ...] = ()
        tool_choice = ""
        if self.web_search:
            tools, include, tool_choice = WEB_SEARCH_TOOLS, WEB_SEARCH_INCLUDE, "auto"
        return ChatRequest(
            prompt=prompt,
            system=self.system,
            history=self.reconciler.history(),
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            tools=tools,
            tool_choice=tool_choice,
            include=include,
            reasoning_effort=self.reasoning_effort,
            reasoning_summary=self.reasoning_summary,
        )

    async def send(self, prompt: str) -> LLMResponse | None:
        """Run a whole turn; return the response, or None on failure."""
        async for _ in self.turn(prompt):
            pass
        return self.last_response

    async def turn(self, prompt: str) -> AsyncGenerator[TranscriptEntry | None, None]:
        """Run one turn, yielding the transcript entry each event touched."""
        await self.cancel()

        turn = _Turn(request=self.build_request(prompt))
        self._turn = turn
        self.last_response = None
        user_entry = self.reconciler.begin_turn(prompt)
        await self._emit(EventType.TURN_STARTED, entry=user_entry)
        turn.producer = asyncio.create_task(self._produce(turn))

        try:
            while True:
                item = await turn.events.get()
                if item is _CANCELLED:
                    return
                if item is _CLOSED:
                    break
                entry = self.reconciler.apply(item)
                await self._emit(EventType.TURN_UPDATED, entry=entry, event=item)
                yield entry

            turn.finished = True
            if not turn.errors.empty():
                error = turn.errors.get_nowait()
                entry = self.reconciler.fail(str(error))
                await self._emit(EventType.TURN_ERROR, entry=entry, error=error)
                yield entry
            else:
                # Finalize even if the server closed without "completed"
                self.reconciler.complete()
                self.last_response = turn.response
                await self._emit(EventType.TURN_DONE, response=turn.response)
        finally:
            if self._turn is turn and not turn.finished:
                await self.cancel()

    async def cancel(self) -> None:
        """Abandon the in-flight turn, if any."""
        turn = self._turn
        if turn is None or turn.finished:
            return
        turn.finished = True
        if turn.producer is not None and not turn.producer.done():
            turn.producer.cancel()
            await asyncio.wait([turn.producer])
        # Discard queued events and wake a consumer still waiting on them
        while not turn.events.empty():
            turn.events.get_nowait()
        turn.events.put_nowait(_CANCELLED)
        self.reconciler.cancel()
        _logger.info("Turn cancelled")
        await self._emit(EventType.TURN_CANCELLED)

    async def close(self) -> None:
        """Cancel any running turn and close the client."""
        await self.cancel()
        await self._client.close()

    def clear(self) -> None:
        """Forget the conversation (only between turns)."""
        if self.busy:
            raise RuntimeError("cannot clear while a turn is running")
        self.reconciler.clear()
        self.last_response = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _produce(self, turn: _Turn) -> None:
        try:
            if self.stream:
                turn.response = await self._client.complete(
                    turn.request, on_event=turn.events.put,
                )
            else:
                turn.response = await self._client.complete(turn.request)
                await self._publish_whole(turn, turn.response)
        except Exception as e:
            _logger.warning("Turn failed: %s", e)
            turn.errors.put_nowait(e)
        await turn.events.put(_CLOSED)

    @staticmethod
    async def _publish_whole(turn: _Turn, response: LLMResponse) -> None:
        events: list[StreamEvent] = []
        if response.text:
            events.append(TextDelta(response.text))
        events.append(Completed())
        for event in events:
            await turn.events.put(event)

    async def _emit(self, event_type: EventType, **data: Any) -> None:
        await self._bus.emit(SessionEvent(type=event_type, data=data))
