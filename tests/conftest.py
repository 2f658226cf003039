from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from pixelchat.app import ChatApp, build_tool_registry
from pixelchat.model import ModelConfig, ModelEvent, ModelRequest
from pixelchat.store import FileChatStore, StaticSessionProvider


@dataclass
class FakeModelStream:
    events: list[ModelEvent]
    error: Exception | None = None
    requests: list[ModelRequest] = field(default_factory=list)

    async def stream(self, request: ModelRequest) -> AsyncIterator[ModelEvent]:
        self.requests.append(request)
        for event in self.events:
            yield event
        if self.error is not None:
            raise self.error


@dataclass
class FakeImageGenerator:
    url: str | None = "https://example/cat.png"
    error: Exception | None = None
    calls: list[dict[str, object]] = field(default_factory=list)

    async def generate(self, *, model: str, prompt: str, n: int, size: str) -> str | None:
        self.calls.append({"model": model, "prompt": prompt, "n": n, "size": size})
        if self.error is not None:
            raise self.error
        return self.url


@pytest.fixture
def model_config() -> ModelConfig:
    return ModelConfig(model="openai:gpt-4o-mini", system="be brief", temperature=0.7, top_p=1.0)


@pytest.fixture
def image_generator() -> FakeImageGenerator:
    return FakeImageGenerator()


@pytest.fixture
def chat_store(tmp_path: Path) -> FileChatStore:
    return FileChatStore(tmp_path / "home")


@pytest.fixture
def make_app(image_generator: FakeImageGenerator, chat_store: FileChatStore) -> Callable[..., ChatApp]:
    def _make(model: FakeModelStream, *, user_id: str | None = "user-1") -> ChatApp:
        return ChatApp(
            model=model,
            tools=build_tool_registry(image_generator),
            chats=chat_store,
            sessions=StaticSessionProvider(user_id),
        )

    return _make


@pytest.fixture
def fake_model() -> Callable[..., FakeModelStream]:
    def _make(*events: ModelEvent, error: Exception | None = None) -> FakeModelStream:
        return FakeModelStream(events=list(events), error=error)

    return _make
