"""Async client for the OpenAI Responses API.

Uses ``httpx.AsyncClient`` and exposes a single ``async def complete()``.
When an ``on_event`` callback is given the response is streamed and
delivered as typed ``StreamEvent`` values; if the provider refuses to
stream, the same request is re-issued once without streaming.
"""

from __future__ import annotations

import inspect
import json
import logging
import time
from typing import Any, Awaitable, Callable, Union

import httpx

from gotcha.config import LLMSettings
from gotcha.errors import (
    ConfigurationError,
    DecodeError,
    GotchaError,
    ProtocolError,
    StreamFallbackError,
    TransportError,
)
from gotcha.types import (
    ChatRequest,
    Completed,
    LLMResponse,
    StreamError,
    StreamEvent,
    TextDelta,
)

from .fallback import (
    aggregate_output_text,
    describe_stream_error,
    is_stream_rejection,
    token_usage,
)
from .request_builder import WireRequest, build_wire_request
from .sse import EventDemultiplexer

_logger = logging.getLogger(__name__)

ENDPOINT = "/v1/responses"

# Bytes of a non-2xx body kept for diagnosis and fallback matching
_MAX_ERROR_BODY = 8192

EventHandler = Callable[[StreamEvent], Union[Awaitable[None], None]]


async def _deliver(handler: EventHandler, event: StreamEvent) -> None:
    result = handler(event)
    if inspect.isawaitable(result):
        await result


def _error_text(e: Exception) -> str:
    return str(e) or type(e).__name__


class AsyncResponsesClient:
    """Async client for the Responses API (``POST /v1/responses``)."""

    def __init__(
        self,
        settings: LLMSettings,
        proxy_url: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings

        headers = {
            "Authorization": f"Bearer {settings.api_key}",
            "Content-Type": "application/json",
        }
        kwargs: dict[str, Any] = {}
        if transport is not None:
            kwargs["transport"] = transport
        elif proxy_url:
            # Explicit proxy beats HTTP(S)_PROXY from the environment
            kwargs["proxy"] = proxy_url

        self._client = httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(settings.timeout),
            **kwargs,
        )

    @property
    def name(self) -> str:
        return self.settings.provider

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def complete(
        self,
        request: ChatRequest,
        on_event: EventHandler | None = None,
    ) -> LLMResponse:
        """Run one logical completion.

        Without *on_event* the request is sent non-streaming and the full
        answer is returned.  With it, events are delivered in arrival order
        and the returned response carries the accumulated answer text.
        """
        if not self.settings.api_key:
            raise ConfigurationError(
                "openai: missing API key", hint="set OPENAI_API_KEY",
            )
        wire = build_wire_request(
            request,
            default_model=self.settings.model,
            stream=on_event is not None,
        )
        start = time.monotonic()
        if on_event is None:
            response = await self._complete_once(wire)
        else:
            response = await self._complete_stream(wire, on_event)
        response.latency_ms = (time.monotonic() - start) * 1000
        return response

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncResponsesClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    async def _complete_once(self, wire: WireRequest) -> LLMResponse:
        try:
            resp = await self._client.post(ENDPOINT, json=wire.to_payload())
        except httpx.HTTPError as e:
            raise TransportError(f"openai: {_error_text(e)}") from e

        if not resp.is_success:
            body = resp.content[:_MAX_ERROR_BODY].decode("utf-8", errors="replace")
            _logger.warning("Responses API returned %d", resp.status_code)
            raise ProtocolError(resp.status_code, body)

        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"openai: invalid JSON response: {e}") from e
        if not isinstance(data, dict):
            raise DecodeError("openai: unexpected response body")

        try:
            text = aggregate_output_text(data)
        except ValueError as e:
            raise DecodeError(f"openai: malformed response body: {e}") from e
        input_tokens, output_tokens = token_usage(data)
        model = data.get("model")
        return LLMResponse(
            text=text.strip(),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=model if isinstance(model, str) and model else wire.model,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _complete_stream(
        self,
        wire: WireRequest,
        on_event: EventHandler,
    ) -> LLMResponse:
        failure: str | None = None
        text = ""
        try:
            async with self._client.stream(
                "POST", ENDPOINT, json=wire.to_payload(),
            ) as resp:
                if not resp.is_success:
                    body = await _read_error_body(resp)
                    if not is_stream_rejection(body):
                        _logger.warning("Responses API returned %d", resp.status_code)
                        raise ProtocolError(resp.status_code, body)
                    failure = f"http {resp.status_code}: {body}"
                else:
                    text, failure = await self._scan(resp, on_event)
        except httpx.HTTPError as e:
            raise TransportError(f"openai: {_error_text(e)}") from e

        if failure is not None:
            return await self._fallback(wire, failure, on_event)

        return LLMResponse(text=text.strip(), model=wire.model, streamed=True)

    async def _scan(
        self,
        resp: httpx.Response,
        on_event: EventHandler,
    ) -> tuple[str, str | None]:
        """Pump events until ``Completed`` or an ``error`` event.

        Returns ``(answer_text, error_payload)``; the payload is *None*
        unless the stream must fall back.
        """
        demux = EventDemultiplexer()
        parts: list[str] = []
        count = 0
        async for line in resp.aiter_lines():
            for event in demux.feed(line):
                if isinstance(event, StreamError):
                    _logger.debug("Stream error after %d events", count)
                    return "".join(parts), event.payload
                if isinstance(event, TextDelta):
                    parts.append(event.text)
                count += 1
                await _deliver(on_event, event)
                if isinstance(event, Completed):
                    _logger.debug("Stream completed after %d events", count)
                    return "".join(parts), None
        _logger.debug("Stream closed without completion after %d events", count)
        return "".join(parts), None

    async def _fallback(
        self,
        wire: WireRequest,
        failure: str,
        on_event: EventHandler,
    ) -> LLMResponse:
        """Re-issue *wire* once without streaming."""
        _logger.warning(
            "Streaming not permitted (%s); retrying without stream",
            describe_stream_error(failure)[:200],
        )
        try:
            response = await self._complete_once(wire.without_stream())
        except GotchaError as e:
            raise StreamFallbackError(failure, e) from e

        if response.text:
            await _deliver(on_event, TextDelta(response.text))
        await _deliver(on_event, Completed())
        response.fell_back = True
        return response


async def _read_error_body(resp: httpx.Response) -> str:
    """Read at most ``_MAX_ERROR_BODY`` bytes of a streamed error body."""
    buf = bytearray()
    async for chunk in resp.aiter_bytes():
        buf.extend(chunk)
        if len(buf) >= _MAX_ERROR_BODY:
            break
    return bytes(buf[:_MAX_ERROR_BODY]).decode("utf-8", errors="replace")
