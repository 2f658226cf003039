"""Chat persistence and session identity."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, unquote

from loguru import logger

from pixelchat.types import Chat, ConversationState, message_to_payload, messages_from_payload

CHAT_FILE_SUFFIX = ".json"
TITLE_MAX_CHARS = 100


@dataclass(frozen=True)
class Session:
    user_id: str


class SessionProvider(Protocol):
    async def current_session(self) -> Session | None: ...


class ChatStore(Protocol):
    def save(self, chat: Chat) -> None: ...

    def load(self, chat_id: str) -> Chat | None: ...

    def list_chats(self, user_id: str) -> list[Chat]: ...


class StaticSessionProvider:
    """Session identity fixed at construction; ``None`` means signed out."""

    def __init__(self, user_id: str | None) -> None:
        self._user_id = user_id

    async def current_session(self) -> Session | None:
        if not self._user_id:
            return None
        return Session(user_id=self._user_id)


class FileChatStore:
    """One JSON document per chat under ``<home>/chats``."""

    def __init__(self, home: Path) -> None:
        self._root = (home / "chats").resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def save(self, chat: Chat) -> None:
        path = self._chat_path(chat.id)
        payload = json.dumps(self.chat_to_payload(chat), ensure_ascii=False, indent=2)
        with self._lock:
            staging = path.with_suffix(f"{CHAT_FILE_SUFFIX}.tmp")
            staging.write_text(payload, encoding="utf-8")
            staging.replace(path)

    def load(self, chat_id: str) -> Chat | None:
        path = self._chat_path(chat_id)
        with self._lock:
            if not path.is_file():
                return None
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                logger.warning("chat.load.corrupt path={}", path)
                return None
        return self.chat_from_payload(payload)

    def list_chats(self, user_id: str) -> list[Chat]:
        chats: list[Chat] = []
        for path in self._root.glob(f"*{CHAT_FILE_SUFFIX}"):
            chat = self.load(unquote(path.name.removesuffix(CHAT_FILE_SUFFIX)))
            if chat is not None and chat.user_id == user_id:
                chats.append(chat)
        return sorted(chats, key=lambda item: item.created_at, reverse=True)

    def _chat_path(self, chat_id: str) -> Path:
        return self._root / f"{quote(chat_id, safe='')}{CHAT_FILE_SUFFIX}"

    @staticmethod
    def chat_to_payload(chat: Chat) -> dict[str, Any]:
        return {
            "id": chat.id,
            "title": chat.title,
            "userId": chat.user_id,
            "createdAt": chat.created_at.isoformat(),
            "path": chat.path,
            "messages": [message_to_payload(message) for message in chat.messages],
        }

    @staticmethod
    def chat_from_payload(payload: object) -> Chat | None:
        if not isinstance(payload, dict):
            return None
        chat_id = payload.get("id")
        user_id = payload.get("userId")
        messages = payload.get("messages")
        if not isinstance(chat_id, str) or not isinstance(user_id, str):
            return None
        try:
            created_at = datetime.fromisoformat(str(payload.get("createdAt")))
        except ValueError:
            created_at = datetime.fromtimestamp(0, UTC)
        return Chat(
            id=chat_id,
            title=str(payload.get("title") or ""),
            user_id=user_id,
            created_at=created_at,
            messages=messages_from_payload(messages if isinstance(messages, list) else []),
            path=str(payload.get("path") or chat_path(chat_id)),
        )


def chat_path(chat_id: str) -> str:
    return f"/chat/{chat_id}"


def derive_title(state: ConversationState) -> str:
    return (state.first_user_content() or "")[:TITLE_MAX_CHARS]


class ChatPersister:
    """Commit callback saving a finished turn for the signed-in user."""

    def __init__(self, sessions: SessionProvider, store: ChatStore) -> None:
        self._sessions = sessions
        self._store = store

    async def __call__(self, state: ConversationState) -> None:
        session = await self._sessions.current_session()
        if session is None:
            logger.debug("chat.save.skipped chat={} reason=no_session", state.chat_id)
            return

        chat = Chat(
            id=state.chat_id,
            title=derive_title(state),
            user_id=session.user_id,
            created_at=datetime.now(UTC),
            messages=state.messages,
            path=chat_path(state.chat_id),
        )
        self._store.save(chat)
        logger.info("chat.save chat={} messages={}", chat.id, len(chat.messages))
