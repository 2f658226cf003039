import asyncio
import io

import pytest
from rich.console import Console
from typer.testing import CliRunner

from pixelchat import cli
from pixelchat.config import Settings
from pixelchat.errors import ApiKeyNotConfiguredError
from pixelchat.model import TextDelta, TextDone, ToolCallRequest
from pixelchat.render import Spinner
from pixelchat.streaming import StreamableUI
from pixelchat.types import ConversationState

runner = CliRunner()


def _renderer() -> tuple[cli.Renderer, io.StringIO]:
    buffer = io.StringIO()
    return cli.Renderer(Console(file=buffer, force_terminal=False, width=200)), buffer


@pytest.fixture
def cli_app(monkeypatch: pytest.MonkeyPatch, make_app, fake_model):
    chat_app = make_app(fake_model())
    monkeypatch.setattr(cli, "get_settings", lambda: Settings(user_id="user-1"))
    monkeypatch.setattr(cli, "build_app", lambda _settings: chat_app)
    return chat_app


def test_history_renders_stored_chat(cli_app, make_app, fake_model, model_config) -> None:
    writer = make_app(fake_model(ToolCallRequest("dalle", "c1", {"prompt": "a cat"})))
    store = writer.state_store(ConversationState(chat_id="chat-1"))
    asyncio.run(writer.submit(store, "draw a cat", model_config))

    result = runner.invoke(cli.app, ["history", "chat-1"])

    assert result.exit_code == 0
    assert "draw a cat" in result.output
    assert "https://example/cat.png" in result.output


def test_history_of_missing_chat_fails(cli_app) -> None:
    result = runner.invoke(cli.app, ["history", "nope"])
    assert result.exit_code == 1
    assert "chat not found" in result.output


def test_chats_lists_titles(cli_app, make_app, fake_model, model_config) -> None:
    writer = make_app(fake_model(TextDone("hi")))
    store = writer.state_store(ConversationState(chat_id="chat-9"))
    asyncio.run(writer.submit(store, "tell me a joke", model_config))

    result = runner.invoke(cli.app, ["chats"])

    assert result.exit_code == 0
    assert "chat-9" in result.output
    assert "tell me a joke" in result.output


def test_missing_configuration_exits_cleanly(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(_settings):
        raise ApiKeyNotConfiguredError("Set PIXELCHAT_API_KEY")

    monkeypatch.setattr(cli, "get_settings", lambda: Settings())
    monkeypatch.setattr(cli, "build_app", _fail)

    result = runner.invoke(cli.app, ["chats"])

    assert result.exit_code == 1
    assert "PIXELCHAT_API_KEY" in result.output


@pytest.mark.asyncio
async def test_turn_printer_streams_text(make_app, fake_model, model_config) -> None:
    app = make_app(fake_model(TextDelta("Hi"), TextDelta(" there"), TextDone("Hi there")))
    renderer, buffer = _renderer()
    printer = cli.TurnPrinter(renderer)
    live = StreamableUI(Spinner())
    printer.follow(live)

    record = await app.submit(app.state_store(ConversationState(chat_id="c")), "hello", model_config, ui=live)
    printer.finish(record.resolved())

    output = buffer.getvalue()
    assert output.startswith("Assistant:")
    assert output.rstrip().endswith("Hi there")
    assert output.count("Hi there") == 1


@pytest.mark.asyncio
async def test_turn_printer_shows_loading_then_image(make_app, fake_model, model_config) -> None:
    app = make_app(fake_model(ToolCallRequest("dalle", "c1", {"prompt": "a cat"})))
    renderer, buffer = _renderer()
    printer = cli.TurnPrinter(renderer)
    live = StreamableUI(Spinner())
    printer.follow(live)

    record = await app.submit(app.state_store(ConversationState(chat_id="c")), "draw", model_config, ui=live)
    printer.finish(record.resolved())

    output = buffer.getvalue()
    assert output.index("Generating image...") < output.index("https://example/cat.png")
