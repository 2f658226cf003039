"""Turn orchestration: one user message in, one streamed reply out."""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from loguru import logger

from pixelchat.errors import ToolError, ToolNotFoundError
from pixelchat.logging_utils import chat_context
from pixelchat.model import ModelConfig, ModelRequest, ModelStream, TextDelta, TextDone, ToolCallRequest
from pixelchat.render import BotCard, BotText, ErrorText, LiveDisplay, RenderRecord, Spinner
from pixelchat.state import ConversationStateStore
from pixelchat.streaming import StreamableUI, StreamableValue
from pixelchat.tools.registry import ToolInvocation, ToolOutcome, ToolRegistry, recorded_arguments
from pixelchat.types import (
    AssistantMessage,
    AssistantToolCallMessage,
    ConversationState,
    SystemMessage,
    ToolCallPart,
    ToolMessage,
    ToolResultPart,
    UserMessage,
    new_id,
)

MODEL_FAILURE_TEXT = "Sorry, something went wrong while generating a reply. Please try again."

type HistoryLoader = Callable[[str], Awaitable[ConversationState | None]]


class TurnPhase(enum.StrEnum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    STREAMING = "streaming"
    TOOL_DISPATCH = "tool_dispatch"
    FINALIZING = "finalizing"
    DONE = "done"


@dataclass
class _TurnState:
    store: ConversationStateStore
    ui: LiveDisplay
    phase: TurnPhase = TurnPhase.IDLE
    text: StreamableValue | None = None
    deltas: list[str] = field(default_factory=list)

    def enter(self, phase: TurnPhase) -> None:
        self.phase = phase
        logger.debug("turn.phase phase={}", phase)

    def open_text(self) -> StreamableValue:
        if self.text is None:
            self.text = StreamableValue("")
            self.ui.update(BotText(self.text))
        return self.text

    def seal_text(self) -> None:
        if self.text is not None and not self.text.closed:
            self.text.done()


@dataclass
class _ChatSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0
    latest: ConversationState | None = None


class TurnOrchestrator:
    """Drives a single chat turn against a model stream and a tool registry."""

    def __init__(self, *, model: ModelStream, tools: ToolRegistry, history: HistoryLoader | None = None) -> None:
        self._model = model
        self._tools = tools
        self._history = history
        self._slots: dict[str, _ChatSlot] = {}

    async def submit_turn(
        self,
        store: ConversationStateStore,
        content: str,
        config: ModelConfig,
        *,
        ui: LiveDisplay | None = None,
    ) -> RenderRecord:
        """Run one turn and return its display once the turn is finalized.

        Pass ``ui`` to observe the live display while the turn runs; it
        starts as a spinner, then shows the streamed text or the tool's
        start display, and ends sealed with the final display.

        Turns on one chat run one at a time. A turn whose store holds a
        snapshot that an earlier turn has since extended continues from the
        latest committed state (the previous turn, else ``history``).
        """
        live: LiveDisplay = ui if ui is not None else StreamableUI(Spinner())
        chat_id = store.chat_id
        slot = self._slots.setdefault(chat_id, _ChatSlot())
        slot.users += 1
        try:
            async with slot.lock:
                with chat_context(chat_id):
                    latest = slot.latest
                    if latest is None and self._history is not None:
                        latest = await self._history(chat_id)
                    if latest is not None and _is_prefix(store.get(), latest):
                        store.update(latest)
                    turn = _TurnState(store=store, ui=live)
                    try:
                        await self._run(turn, content, config)
                    finally:
                        turn.seal_text()
                        if not live.closed:
                            live.done()
                        turn.enter(TurnPhase.DONE)
                    if store.committed:
                        slot.latest = store.get()
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[chat_id]
        return RenderRecord(id=new_id(), display=live)

    async def _run(self, turn: _TurnState, content: str, config: ModelConfig) -> None:
        store = turn.store
        store.update(store.get().append(UserMessage(new_id(), content)))
        turn.enter(TurnPhase.AWAITING_MODEL)
        request = ModelRequest(config=config, messages=store.get().messages, tools=self._tools.model_tools())

        completion: TextDone | ToolCallRequest | None = None
        events = self._model.stream(request)
        try:
            async for event in events:
                match event:
                    case TextDelta(delta=delta):
                        if turn.phase is not TurnPhase.STREAMING:
                            turn.enter(TurnPhase.STREAMING)
                        turn.deltas.append(delta)
                        turn.open_text().update(delta)
                    case TextDone() | ToolCallRequest():
                        completion = event
                        break
        except Exception as exc:
            logger.exception("turn.error phase={}", turn.phase)
            await self._fail(turn, exc)
            return
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

        match completion:
            case TextDone(content=full_text):
                await self._finish_text(turn, full_text)
            case ToolCallRequest():
                await self._dispatch_tool(turn, completion)
            case None if turn.text is not None:
                # Stream ended without a completion event.
                await self._finish_text(turn, "".join(turn.deltas))
            case None:
                turn.enter(TurnPhase.FINALIZING)
                await store.commit(store.get())

    async def _finish_text(self, turn: _TurnState, full_text: str) -> None:
        turn.enter(TurnPhase.FINALIZING)
        if turn.text is None:
            turn.open_text().done(full_text)
        else:
            turn.seal_text()
        store = turn.store
        await store.commit(store.get().append(AssistantMessage(new_id(), full_text)))

    async def _dispatch_tool(self, turn: _TurnState, request: ToolCallRequest) -> None:
        turn.seal_text()
        turn.enter(TurnPhase.TOOL_DISPATCH)
        call_id = request.call_id or new_id()
        arguments = recorded_arguments(request.arguments)

        try:
            invocation = self._tools.prepare(request.name, call_id, request.arguments)
        except ToolError as exc:
            logger.warning("tool.call.rejected name={} error={}", request.name, exc)
            outcome = ToolOutcome(
                result={"error": _rejection_message(exc)},
                display=BotCard(ErrorText(f"Sorry, I could not run the {request.name} tool.")),
            )
        else:
            arguments = invocation.arguments
            outcome = await self._run_invocation(turn, invocation)

        turn.enter(TurnPhase.FINALIZING)
        store = turn.store
        await store.commit(
            store.get().append(
                AssistantToolCallMessage(new_id(), (ToolCallPart(request.name, call_id, arguments),)),
                ToolMessage(new_id(), (ToolResultPart(request.name, call_id, outcome.result),)),
            )
        )
        turn.ui.done(outcome.display)

    async def _run_invocation(self, turn: _TurnState, invocation: ToolInvocation) -> ToolOutcome:
        turn.ui.update(invocation.on_start())
        # Let observers render the start display before the handler suspends.
        await asyncio.sleep(0)
        return await invocation.resolve()

    async def _fail(self, turn: _TurnState, exc: Exception) -> None:
        turn.seal_text()
        turn.enter(TurnPhase.FINALIZING)
        store = turn.store
        try:
            await store.commit(store.get().append(SystemMessage(new_id(), f"[Model stream failed: {exc!s}]")))
        finally:
            if not turn.ui.closed:
                turn.ui.done(ErrorText(MODEL_FAILURE_TEXT))


def _rejection_message(exc: ToolError) -> str:
    if isinstance(exc, ToolNotFoundError):
        return f"Unknown tool: {exc}"
    return f"Invalid arguments: {exc}"


def _is_prefix(state: ConversationState, latest: ConversationState) -> bool:
    count = len(state.messages)
    return count <= len(latest.messages) and latest.messages[:count] == state.messages
