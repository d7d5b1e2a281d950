"""Shared fixtures for gotcha tests."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from gotcha.config import LLMSettings
from gotcha.llm.client import AsyncResponsesClient

_ENV_VARS = (
    "GOTCHA_APP_NAME",
    "LLM_PROVIDER",
    "LLM_MODEL",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "LLM_MAX_TOKENS",
    "LLM_TEMPERATURE",
    "PROXY_URL",
    "HTTPS_PROXY",
    "https_proxy",
    "HTTP_PROXY",
    "http_proxy",
    "ALL_PROXY",
    "all_proxy",
)


def sse(*events: tuple[str, str]) -> bytes:
    """Build an SSE body from ``(event_name, data)`` pairs."""
    return "".join(f"event: {name}\ndata: {data}\n\n" for name, data in events).encode()


def text_delta(text: str) -> tuple[str, str]:
    return ("response.output_text.delta", json.dumps({"delta": text}))


COMPLETED = ("response.completed", '{"type":"response.completed"}')


class Recorder:
    """MockTransport handler that replays scripted responses in order."""

    def __init__(self, *responses: httpx.Response | Callable[[httpx.Request], Any]):
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            raise AssertionError("unexpected extra request")
        item = self._responses.pop(0)
        if callable(item) and not isinstance(item, httpx.Response):
            return item(request)
        return item


@pytest.fixture
def settings() -> LLMSettings:
    return LLMSettings(
        model="gpt-4o-mini",
        api_key="test-key",
        base_url="https://api.test",
        max_tokens=600,
        temperature=0.2,
    )


@pytest.fixture
def make_client(settings: LLMSettings):
    """Build a client whose HTTP layer is served by a ``Recorder``."""
    def _make(recorder: Recorder, **overrides: Any) -> AsyncResponsesClient:
        cfg = LLMSettings(**{**settings.__dict__, **overrides})
        return AsyncResponsesClient(cfg, transport=httpx.MockTransport(recorder))

    return _make


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
