"""Terminal front-end for pixelchat."""

from __future__ import annotations

import asyncio

import typer
from prompt_toolkit import PromptSession
from rich.console import Console
from rich.markup import escape

from pixelchat.app import ChatApp, build_app
from pixelchat.config import MODEL_CHOICES, Settings, get_settings
from pixelchat.errors import ConfigurationError
from pixelchat.logging_utils import configure_logging
from pixelchat.model import ModelConfig
from pixelchat.render import (
    BotCard,
    BotText,
    Display,
    ErrorText,
    Group,
    ImageCard,
    ImageLoading,
    RenderRecord,
    Spinner,
    UserText,
)
from pixelchat.streaming import StreamableUI, StreamableValue

EXIT_COMMANDS = frozenset({"quit", "exit", "q"})

app = typer.Typer(
    name="pixelchat",
    help="Chat with an LLM that can draw.",
    add_completion=False,
    rich_markup_mode="rich",
)


class Renderer:
    """CLI renderer using Rich for terminal output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def info(self, message: str) -> None:
        self.console.print(message)

    def error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {message}")

    def welcome(self, chat_id: str, model: str) -> None:
        self.console.print("[bold blue]pixelchat[/bold blue] - type 'quit' to leave")
        self.console.print(f"[bold]Chat:[/bold] [cyan]{chat_id}[/cyan]  [bold]Model:[/bold] [magenta]{model}[/magenta]")

    def records(self, records: list[RenderRecord]) -> None:
        for record in records:
            display = record.resolved()
            if display is not None:
                self.display(display)

    def display(self, display: Display) -> None:
        match display:
            case UserText(content=content):
                self.console.print(f"[bold cyan]You:[/bold cyan] {escape(content)}", highlight=False)
            case BotText():
                self.console.print("[bold yellow]Assistant:[/bold yellow] ", end="")
                self.console.print(display.text, markup=False, highlight=False)
            case BotCard(child=child):
                self._card(child)
            case ErrorText(content=content):
                self.console.print(f"[red]{escape(content)}[/red]")
            case Group(children=children):
                for child_display in children:
                    self.display(child_display)
            case Spinner():
                self.console.print("[dim]...[/dim]")

    def _card(self, child: ImageLoading | ImageCard | ErrorText) -> None:
        match child:
            case ImageLoading():
                self.console.print("[dim]Generating image...[/dim]")
            case ImageCard():
                self.console.print(
                    f"[bold yellow]Assistant:[/bold yellow] {escape(child.markdown)} [dim]({child.width}x{child.height})[/dim]",
                    highlight=False,
                )
            case ErrorText(content=content):
                self.console.print(f"[red]{escape(content)}[/red]")


class TurnPrinter:
    """Follows a live turn display and prints text deltas as they arrive."""

    def __init__(self, renderer: Renderer) -> None:
        self._renderer = renderer
        self._printed = 0
        self._streamed = False

    def follow(self, live: StreamableUI[Display]) -> None:
        live.subscribe(self._on_display)

    def finish(self, final: Display | None) -> None:
        if self._streamed and isinstance(final, BotText):
            self._renderer.console.print()
            return
        if self._streamed:
            self._renderer.console.print()
        if final is not None:
            self._renderer.display(final)

    def _on_display(self, display: Display) -> None:
        match display:
            case BotText(content=StreamableValue() as text) if not self._streamed:
                self._streamed = True
                self._renderer.console.print("[bold yellow]Assistant:[/bold yellow] ", end="")
                text.subscribe(self._on_text)
            case BotCard(child=ImageLoading()):
                self._renderer.display(display)

    def _on_text(self, value: str) -> None:
        fresh = value[self._printed :]
        self._printed = len(value)
        if fresh:
            self._renderer.console.print(fresh, end="", markup=False, highlight=False)


async def run_chat(chat_app: ChatApp, renderer: Renderer, config: ModelConfig, chat_id: str | None) -> None:
    state = await chat_app.load_state(chat_id)
    renderer.welcome(state.chat_id, config.model)
    if chat_id is not None:
        records = await chat_app.ui_state(chat_id)
        if records:
            renderer.records(records)

    session: PromptSession[str] = PromptSession()
    while True:
        try:
            user_input = await session.prompt_async("> ")
        except (KeyboardInterrupt, EOFError):
            break
        if not user_input.strip():
            continue
        if user_input.strip().lower() in EXIT_COMMANDS:
            break

        store = chat_app.state_store(state)
        live: StreamableUI[Display] = StreamableUI(Spinner())
        printer = TurnPrinter(renderer)
        printer.follow(live)
        record = await chat_app.submit(store, user_input, config, ui=live)
        printer.finish(record.resolved())
        state = store.get()
    renderer.info("Goodbye!")


def _load_settings() -> Settings:
    settings = get_settings()
    configure_logging(settings.log_level)
    return settings


def _build_app(settings: Settings, renderer: Renderer) -> ChatApp:
    try:
        return build_app(settings)
    except ConfigurationError as exc:
        renderer.error(str(exc))
        raise typer.Exit(1) from exc


@app.command()
def chat(
    chat_id: str | None = typer.Option(None, "--chat-id", help="Resume a stored chat"),
    model: str | None = typer.Option(None, "--model", "-m", help=f"Model, one of {', '.join(MODEL_CHOICES)}"),
    temperature: float | None = typer.Option(None, "--temperature", help="Sampling temperature"),
    top_p: float | None = typer.Option(None, "--top-p", help="Nucleus sampling threshold"),
    system: str | None = typer.Option(None, "--system", help="Override the system instructions"),
) -> None:
    """Start an interactive chat."""
    settings = _load_settings()
    renderer = Renderer()
    chat_app = _build_app(settings, renderer)
    config = settings.turn_config(model=model, temperature=temperature, top_p=top_p, system=system)
    asyncio.run(run_chat(chat_app, renderer, config, chat_id))


@app.command()
def history(chat_id: str = typer.Argument(..., help="Stored chat id")) -> None:
    """Render a stored chat."""
    settings = _load_settings()
    renderer = Renderer()
    chat_app = _build_app(settings, renderer)
    records = asyncio.run(chat_app.ui_state(chat_id))
    if records is None:
        renderer.error(f"chat not found: {chat_id}")
        raise typer.Exit(1)
    renderer.records(records)


@app.command()
def chats() -> None:
    """List stored chats of the configured user."""
    settings = _load_settings()
    renderer = Renderer()
    chat_app = _build_app(settings, renderer)
    stored = asyncio.run(chat_app.chats_for_current_user())
    if not stored:
        renderer.info("[dim](no chats)[/dim]")
        return
    for item in stored:
        renderer.info(f"[cyan]{item.id}[/cyan]  {item.created_at:%Y-%m-%d %H:%M}  {item.title}")
