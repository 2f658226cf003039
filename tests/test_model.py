import json
from dataclasses import dataclass
from typing import Any

import pytest

from pixelchat.errors import ModelStreamError
from pixelchat.model import (
    ModelConfig,
    ModelRequest,
    RepublicModelStream,
    TextDelta,
    TextDone,
    ToolCallRequest,
    to_model_messages,
)
from pixelchat.types import (
    AssistantMessage,
    AssistantToolCallMessage,
    SystemMessage,
    ToolCallPart,
    ToolMessage,
    ToolResultPart,
    UserMessage,
)


@dataclass(frozen=True)
class FakeStreamEvent:
    kind: str
    data: dict[str, Any]


@dataclass
class FakeAsyncStreamEvents:
    events: list[FakeStreamEvent]
    error: object | None = None

    def __aiter__(self):
        async def _iterator():
            for event in self.events:
                yield event

        return _iterator()


class FakeLLM:
    instances: list["FakeLLM"] = []
    next_stream: FakeAsyncStreamEvents = FakeAsyncStreamEvents(events=[])

    def __init__(self, model: str, **kwargs: Any) -> None:
        self.model = model
        self.kwargs = kwargs
        self.calls: list[dict[str, Any]] = []
        FakeLLM.instances.append(self)

    async def stream_events_async(self, **kwargs: Any) -> FakeAsyncStreamEvents:
        self.calls.append(kwargs)
        return FakeLLM.next_stream


@pytest.fixture
def fake_llm(monkeypatch: pytest.MonkeyPatch) -> type[FakeLLM]:
    FakeLLM.instances = []
    FakeLLM.next_stream = FakeAsyncStreamEvents(events=[])
    monkeypatch.setattr("pixelchat.model.LLM", FakeLLM)
    return FakeLLM


def _request() -> ModelRequest:
    config = ModelConfig(model="openai:gpt-4o-mini", system="sys", temperature=0.2, top_p=0.9)
    return ModelRequest(config=config, messages=(UserMessage("u", "hello"),))


async def _collect(stream: RepublicModelStream) -> list[object]:
    return [event async for event in stream.stream(_request())]


def test_history_maps_to_chat_messages() -> None:
    messages = to_model_messages([
        SystemMessage("s", "note"),
        UserMessage("u", "draw a cat"),
        AssistantToolCallMessage("a", (ToolCallPart("dalle", "c1", {"prompt": "a cat"}),)),
        ToolMessage("t", (ToolResultPart("dalle", "c1", {"imageUrl": "https://example/cat.png"}),)),
        AssistantMessage("a2", "done"),
    ])

    assert messages[0] == {"role": "system", "content": "note"}
    assert messages[1] == {"role": "user", "content": "draw a cat"}
    assert messages[2]["tool_calls"][0]["id"] == "c1"
    assert json.loads(messages[2]["tool_calls"][0]["function"]["arguments"]) == {"prompt": "a cat"}
    assert messages[3]["role"] == "tool"
    assert messages[3]["tool_call_id"] == "c1"
    assert json.loads(messages[3]["content"]) == {"imageUrl": "https://example/cat.png"}
    assert messages[4] == {"role": "assistant", "content": "done"}


@pytest.mark.asyncio
async def test_text_events_map_to_deltas_and_done(fake_llm) -> None:
    fake_llm.next_stream = FakeAsyncStreamEvents(
        events=[
            FakeStreamEvent("text", {"delta": "Hi"}),
            FakeStreamEvent("text", {"delta": " there"}),
            FakeStreamEvent("final", {"text": "Hi there", "tool_calls": [], "ok": True}),
        ]
    )

    events = await _collect(RepublicModelStream(api_key="k"))

    assert events == [TextDelta("Hi"), TextDelta(" there"), TextDone("Hi there")]
    call = fake_llm.instances[0].calls[0]
    assert call["system_prompt"] == "sys"
    assert call["temperature"] == 0.2
    assert call["top_p"] == 0.9
    assert call["messages"] == [{"role": "user", "content": "hello"}]


@pytest.mark.asyncio
async def test_tool_call_events_map_to_requests(fake_llm) -> None:
    call = {"id": "call-1", "type": "function", "function": {"name": "dalle", "arguments": '{"prompt": "a cat"}'}}
    fake_llm.next_stream = FakeAsyncStreamEvents(
        events=[
            FakeStreamEvent("tool_call", {"index": 0, "call": call}),
            FakeStreamEvent("final", {"text": None, "tool_calls": [call], "ok": True}),
        ]
    )

    events = await _collect(RepublicModelStream(api_key="k"))

    assert events == [ToolCallRequest("dalle", "call-1", '{"prompt": "a cat"}')]


@pytest.mark.asyncio
async def test_error_events_raise(fake_llm) -> None:
    fake_llm.next_stream = FakeAsyncStreamEvents(
        events=[FakeStreamEvent("error", {"kind": "provider", "message": "rate limited"})]
    )

    with pytest.raises(ModelStreamError, match="provider: rate limited"):
        await _collect(RepublicModelStream(api_key="k"))


@pytest.mark.asyncio
async def test_clients_are_reused_per_model(fake_llm) -> None:
    stream = RepublicModelStream(api_key="k", api_base="https://llm.example")
    await _collect(stream)
    await _collect(stream)

    assert len(fake_llm.instances) == 1
    assert fake_llm.instances[0].kwargs == {"api_key": "k", "api_base": "https://llm.example"}
