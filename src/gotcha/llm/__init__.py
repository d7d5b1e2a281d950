"""LLM client and wire protocol for gotcha."""

from gotcha.llm.client import AsyncResponsesClient
from gotcha.llm.request_builder import WireRequest, build_input, build_wire_request
from gotcha.llm.sse import EventDemultiplexer, decode_delta

__all__ = [
    "AsyncResponsesClient",
    "EventDemultiplexer",
    "WireRequest",
    "build_input",
    "build_wire_request",
    "decode_delta",
]
