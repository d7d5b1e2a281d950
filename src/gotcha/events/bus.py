"""Async pub/sub bus between a chat session and whatever renders it."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict, deque
from typing import Any, Callable

from gotcha.types import EventType, SessionEvent

_logger = logging.getLogger(__name__)

# Subscribe with this key to receive every event
WILDCARD = "*"

Handler = Callable[[SessionEvent], Any]


class EventBus:
    """Fans ``SessionEvent`` values out to sync or async handlers.

    Handlers are keyed by ``EventType`` (or its string value) or by
    ``"*"``.  Every emitted event is kept in a bounded history so a
    renderer attached late can replay the turn.  A failing handler is
    logged and never breaks the turn that emitted the event.
    """

    def __init__(self, max_history: int = 200) -> None:
        self._handlers: defaultdict[str, list[Handler]] = defaultdict(list)
        self._history: deque[SessionEvent] = deque(maxlen=max_history)

    def subscribe(self, event_type: EventType | str, handler: Handler) -> None:
        key = event_type.value if isinstance(event_type, EventType) else str(event_type)
        self._handlers[key].append(handler)

    async def emit(self, event: SessionEvent) -> None:
        """Record *event*, then run its type's handlers and the wildcard ones."""
        self._history.append(event)
        targets = [*self._handlers.get(event.type.value, ()), *self._handlers.get(WILDCARD, ())]
        if targets:
            await asyncio.gather(*(self._dispatch(h, event) for h in targets))

    @property
    def history(self) -> list[SessionEvent]:
        return list(self._history)

    def clear(self) -> None:
        self._handlers.clear()
        self._history.clear()

    @staticmethod
    async def _dispatch(handler: Handler, event: SessionEvent) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            _logger.exception("Handler %r failed on %s", handler, event.type.value)
