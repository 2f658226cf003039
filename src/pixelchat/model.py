"""Model streaming protocol and the Republic-backed implementation."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from loguru import logger
from republic import LLM, Tool

from pixelchat.errors import ModelStreamError
from pixelchat.types import (
    AssistantMessage,
    AssistantToolCallMessage,
    Message,
    SystemMessage,
    ToolMessage,
    UserMessage,
)


@dataclass(frozen=True)
class ModelConfig:
    """Per-turn model parameters, passed through to the provider as-is."""

    model: str
    system: str
    temperature: float = 0.7
    top_p: float = 1.0


@dataclass(frozen=True)
class ModelRequest:
    config: ModelConfig
    messages: tuple[Message, ...]
    tools: list[Tool] = field(default_factory=list)


@dataclass(frozen=True)
class TextDelta:
    delta: str


@dataclass(frozen=True)
class TextDone:
    content: str


@dataclass(frozen=True)
class ToolCallRequest:
    name: str
    call_id: str
    arguments: dict[str, Any] | str | None = None


type ModelEvent = TextDelta | TextDone | ToolCallRequest


class ModelStream(Protocol):
    def stream(self, request: ModelRequest) -> AsyncIterator[ModelEvent]: ...


def to_model_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Map stored history to chat-completion style messages."""
    rendered: list[dict[str, Any]] = []
    for message in messages:
        match message:
            case UserMessage(content=text) | AssistantMessage(content=text) | SystemMessage(content=text):
                rendered.append({"role": message.role, "content": text})
            case AssistantToolCallMessage(parts=parts):
                rendered.append({
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [
                        {
                            "id": part.call_id,
                            "type": "function",
                            "function": {
                                "name": part.tool_name,
                                "arguments": json.dumps(part.arguments, ensure_ascii=False),
                            },
                        }
                        for part in parts
                    ],
                })
            case ToolMessage(parts=parts):
                rendered.extend(
                    {
                        "role": "tool",
                        "tool_call_id": part.call_id,
                        "name": part.tool_name,
                        "content": json.dumps(part.result, ensure_ascii=False),
                    }
                    for part in parts
                )
    return rendered


class RepublicModelStream:
    """Streams one completion through Republic and maps its events."""

    def __init__(self, *, api_key: str, api_base: str | None = None) -> None:
        self._api_key = api_key
        self._api_base = api_base
        self._clients: dict[str, LLM] = {}

    def _client(self, model: str) -> LLM:
        if model not in self._clients:
            self._clients[model] = LLM(model, api_key=self._api_key, api_base=self._api_base)
        return self._clients[model]

    async def stream(self, request: ModelRequest) -> AsyncIterator[ModelEvent]:
        config = request.config
        logger.info("model.stream.start model={} messages={}", config.model, len(request.messages))
        stream = await self._client(config.model).stream_events_async(
            system_prompt=config.system,
            messages=to_model_messages(request.messages),
            tools=request.tools or None,
            temperature=config.temperature,
            top_p=config.top_p,
        )

        text_parts: list[str] = []
        async for event in stream:
            event_kind = getattr(event, "kind", None)
            event_data = getattr(event, "data", None)
            if not isinstance(event_data, dict):
                continue
            if event_kind == "text":
                delta = event_data.get("delta")
                if isinstance(delta, str) and delta:
                    text_parts.append(delta)
                    yield TextDelta(delta)
            elif event_kind == "tool_call":
                call = _parse_tool_call(event_data.get("call"))
                if call is not None:
                    yield call
            elif event_kind == "error":
                raise ModelStreamError(_format_error_event(event_data))
            elif event_kind == "final":
                final_text = event_data.get("text")
                if isinstance(final_text, str):
                    yield TextDone(final_text)
                elif not event_data.get("tool_calls"):
                    yield TextDone("".join(text_parts))

        stream_error = getattr(stream, "error", None)
        if stream_error is not None:
            raise ModelStreamError(str(getattr(stream_error, "message", stream_error)))


def _parse_tool_call(call: object) -> ToolCallRequest | None:
    if not isinstance(call, dict):
        return None
    function = call.get("function")
    if not isinstance(function, dict):
        return None
    name = function.get("name")
    if not isinstance(name, str) or not name:
        return None
    call_id = call.get("id")
    return ToolCallRequest(
        name=name,
        call_id=str(call_id) if call_id else "",
        arguments=function.get("arguments"),
    )


def _format_error_event(error_event: dict[str, Any]) -> str:
    kind = error_event.get("kind")
    message = error_event.get("message")
    if isinstance(kind, str) and isinstance(message, str):
        return f"{kind}: {message}"
    if isinstance(message, str):
        return message
    return "model_stream_error: unknown"
