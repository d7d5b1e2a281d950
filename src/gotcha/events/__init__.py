"""Async event bus for gotcha."""

from gotcha.events.bus import WILDCARD, EventBus

__all__ = ["EventBus", "WILDCARD"]
