"""Detection of "streaming not permitted" responses.

Some organizations and models are not allowed to stream.  The provider
reports this either as a 4xx with a recognizable body or as an ``error``
event inside the stream; both lead to a single non-streaming retry.
"""

from __future__ import annotations

import json
from typing import Any

# Matched case-sensitively against the raw error body.
_STREAM_PARAM_MARKER = '"param":"stream"'
_UNSUPPORTED_VALUE_MARKER = "unsupported_value"
# Matched against the lower-cased body.
_VERIFY_ORG_MARKER = "verify organization"


def is_stream_rejection(body: str) -> bool:
    """Return True if a non-2xx error *body* says streaming is not allowed."""
    return (
        _STREAM_PARAM_MARKER in body
        or _VERIFY_ORG_MARKER in body.lower()
        or _UNSUPPORTED_VALUE_MARKER in body
    )


def aggregate_output_text(data: dict[str, Any]) -> str:
    """Extract the answer text from a non-streaming response body.

    ``output_text`` wins; otherwise every ``output_text``/``text`` content
    item of every output block is concatenated in order.

    Raises ``ValueError`` when a text field is present but not a string.
    """
    text = data.get("output_text") or ""
    if not isinstance(text, str):
        raise ValueError(f"output_text is {type(text).__name__}, not a string")
    if text:
        return text
    output = data.get("output") or []
    if not isinstance(output, list):
        raise ValueError(f"output is {type(output).__name__}, not a list")
    parts: list[str] = []
    for block in output:
        if not isinstance(block, dict):
            continue
        content = block.get("content") or []
        if not isinstance(content, list):
            continue
        for item in content:
            if isinstance(item, dict) and item.get("type") in ("output_text", "text"):
                part = item.get("text") or ""
                if not isinstance(part, str):
                    raise ValueError(f"content text is {type(part).__name__}, not a string")
                parts.append(part)
    return "".join(parts)


def token_usage(data: dict[str, Any]) -> tuple[int, int]:
    """Return ``(input_tokens, output_tokens)``; malformed counts read as 0."""
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return 0, 0
    counts = []
    for key in ("input_tokens", "output_tokens"):
        value = usage.get(key)
        counts.append(value if isinstance(value, int) and not isinstance(value, bool) else 0)
    return counts[0], counts[1]


def describe_stream_error(payload: str) -> str:
    """Best-effort one-line description of an ``error`` event payload."""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return payload
    if isinstance(data, dict):
        err = data.get("error", data)
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return payload
