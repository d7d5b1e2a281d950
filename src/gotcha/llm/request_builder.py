"""Projection of a ``ChatRequest`` onto the Responses API wire payload."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from gotcha.types import ChatRequest, ChatTurn, Role

# Models in these families reject the ``temperature`` parameter.
_NO_TEMPERATURE_PREFIXES = ("gpt-5", "o3")

HISTORY_HEADER = "Previous conversation:\n"
CURRENT_MESSAGE_MARKER = "Current user message: "

_SPEAKER_LABELS = {
    Role.USER: "User: ",
    Role.ASSISTANT: "Assistant: ",
}


def supports_temperature(model: str) -> bool:
    """Return False for reasoning-only model families."""
    return not model.lower().startswith(_NO_TEMPERATURE_PREFIXES)


def build_input(prompt: str, history: tuple[ChatTurn, ...] | list[ChatTurn]) -> str:
    """Fold prior turns and the current prompt into one input string.

    Without history the trimmed prompt is returned verbatim.  Tool and
    reasoning turns are never sent back to the provider.
    """
    if not history:
        return prompt.strip()

    parts = [HISTORY_HEADER]
    for turn in history:
        label = _SPEAKER_LABELS.get(Role(turn.role))
        if label is None:
            continue
        parts.append(f"{label}{turn.text}\n\n")
    parts.append(CURRENT_MESSAGE_MARKER)
    parts.append(prompt.strip())
    return "".join(parts)


@dataclass(frozen=True)
class WireRequest:
    """Provider-shaped request body.  Only ``without_stream()`` derives copies."""

    model: str
    input: Any
    instructions: str = ""
    max_output_tokens: int = 0
    temperature: float | None = None
    stream: bool = False
    stop: tuple[str, ...] = ()
    tools: tuple[dict[str, Any], ...] = ()
    tool_choice: str = ""
    include: tuple[str, ...] = ()
    reasoning: dict[str, str] = field(default_factory=dict)

    def without_stream(self) -> WireRequest:
        return replace(self, stream=False)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON body, omitting empty optional fields."""
        payload: dict[str, Any] = {"model": self.model, "input": self.input}
        if self.instructions:
            payload["instructions"] = self.instructions
        if self.max_output_tokens > 0:
            payload["max_output_tokens"] = self.max_output_tokens
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.stream:
            payload["stream"] = True
        if self.stop:
            payload["stop"] = list(self.stop)
        if self.tools:
            payload["tools"] = [dict(t) for t in self.tools]
        if self.tool_choice:
            payload["tool_choice"] = self.tool_choice
        if self.include:
            payload["include"] = list(self.include)
        if self.reasoning:
            payload["reasoning"] = dict(self.reasoning)
        return payload


def build_wire_request(
    request: ChatRequest,
    *,
    default_model: str,
    stream: bool,
) -> WireRequest:
    """Build the wire request for *request*."""
    model = request.model or default_model

    temperature: float | None = None
    if request.temperature > 0 and supports_temperature(model):
        temperature = request.temperature

    reasoning: dict[str, str] = {}
    if request.reasoning_effort:
        reasoning["effort"] = request.reasoning_effort
    if request.reasoning_summary:
        reasoning["summary"] = request.reasoning_summary

    return WireRequest(
        model=model,
        input=build_input(request.prompt, request.history),
        instructions=request.system.strip(),
        max_output_tokens=request.max_tokens,
        temperature=temperature,
        stream=stream,
        stop=tuple(request.stop),
        tools=tuple(request.tools),
        tool_choice=request.tool_choice,
        include=tuple(request.include),
        reasoning=reasoning,
    )
