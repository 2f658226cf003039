"""Application wiring: settings to orchestrator, stores and sessions."""

from __future__ import annotations

from loguru import logger

from pixelchat.config import Settings
from pixelchat.model import ModelConfig, ModelStream, RepublicModelStream
from pixelchat.orchestrator import TurnOrchestrator
from pixelchat.projector import project_history
from pixelchat.render import LiveDisplay, RenderRecord
from pixelchat.state import ConversationStateStore
from pixelchat.store import ChatPersister, ChatStore, FileChatStore, SessionProvider, StaticSessionProvider
from pixelchat.tools.image import ImageGenerator, OpenAIImageGenerator, image_tool_definition
from pixelchat.tools.registry import ToolRegistry
from pixelchat.types import Chat, ConversationState, new_state


class ChatApp:
    """Owns the long-lived collaborators and runs turns against per-request state."""

    def __init__(
        self,
        *,
        model: ModelStream,
        tools: ToolRegistry,
        chats: ChatStore,
        sessions: SessionProvider,
    ) -> None:
        self.tools = tools
        self.chats = chats
        self.sessions = sessions
        self.orchestrator = TurnOrchestrator(model=model, tools=tools, history=self._stored_state)
        self._persist = ChatPersister(sessions, chats)

    async def load_state(self, chat_id: str | None = None) -> ConversationState:
        """Return the stored state of a chat owned by the current user, or a fresh one."""
        if chat_id is None:
            return new_state()
        chat = await self._load_owned(chat_id)
        if chat is None:
            # Unknown or foreign chat ids start a new chat.
            return new_state()
        return chat.to_state()

    async def ui_state(self, chat_id: str) -> list[RenderRecord] | None:
        """Rehydrate a stored chat for display; ``None`` when signed out or missing."""
        chat = await self._load_owned(chat_id)
        if chat is None:
            return None
        return project_history(chat.to_state())

    async def chats_for_current_user(self) -> list[Chat]:
        session = await self.sessions.current_session()
        if session is None:
            return []
        return self.chats.list_chats(session.user_id)

    def state_store(self, state: ConversationState) -> ConversationStateStore:
        return ConversationStateStore(state, on_commit=self._persist)

    async def submit(
        self,
        store: ConversationStateStore,
        content: str,
        config: ModelConfig,
        *,
        ui: LiveDisplay | None = None,
    ) -> RenderRecord:
        return await self.orchestrator.submit_turn(store, content, config, ui=ui)

    async def _stored_state(self, chat_id: str) -> ConversationState | None:
        chat = await self._load_owned(chat_id)
        return chat.to_state() if chat is not None else None

    async def _load_owned(self, chat_id: str) -> Chat | None:
        session = await self.sessions.current_session()
        if session is None:
            return None
        chat = self.chats.load(chat_id)
        if chat is None or chat.user_id != session.user_id:
            if chat is not None:
                logger.warning("chat.load.denied chat={} user={}", chat_id, session.user_id)
            return None
        return chat


def build_tool_registry(generator: ImageGenerator) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(image_tool_definition(generator))
    return registry


def build_app(settings: Settings) -> ChatApp:
    """Build the application from settings with the real model and image APIs."""
    model = RepublicModelStream(api_key=settings.resolved_api_key, api_base=settings.api_base)
    generator = OpenAIImageGenerator.from_api_key(settings.resolved_image_api_key)
    return ChatApp(
        model=model,
        tools=build_tool_registry(generator),
        chats=FileChatStore(settings.resolve_home()),
        sessions=StaticSessionProvider(settings.user_id),
    )
