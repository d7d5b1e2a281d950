"""Exception hierarchy for gotcha.

Every message is a single line so it can be shown directly in the
terminal transcript.
"""

from __future__ import annotations


def _one_line(text: str) -> str:
    return " ".join(text.split())


class GotchaError(Exception):
    """Base exception for all gotcha errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(_one_line(message))
        self.hint = hint


class ConfigurationError(GotchaError):
    """Configuration is missing or invalid (e.g. no API key)."""


class TransportError(GotchaError):
    """Connection failure or timeout talking to the provider."""


class ProtocolError(GotchaError):
    """The provider answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"openai: http {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class DecodeError(GotchaError):
    """A non-streaming response body was not valid JSON."""


class StreamFallbackError(GotchaError):
    """Streaming failed and the single non-streaming retry failed too."""

    def __init__(self, stream_failure: str, retry_failure: BaseException) -> None:
        super().__init__(
            f"openai stream error then retry failed: {retry_failure}"
            f" | payload={stream_failure}"
        )
        self.stream_failure = stream_failure
        self.retry_failure = retry_failure
