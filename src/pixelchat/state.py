"""Mutable conversation state container for one turn."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from loguru import logger

from pixelchat.types import ConversationState

type CommitCallback = Callable[[ConversationState], Awaitable[None]]


class ConversationStateStore:
    """Holds the canonical history while a turn runs.

    Constructed per request with the current state and an optional commit
    callback. ``update`` records intermediate snapshots; ``commit`` records
    the final snapshot of the turn and hands it to the callback.
    """

    def __init__(self, initial: ConversationState, *, on_commit: CommitCallback | None = None) -> None:
        self._state = initial
        self._on_commit = on_commit
        self._committed = False

    @property
    def chat_id(self) -> str:
        return self._state.chat_id

    @property
    def committed(self) -> bool:
        return self._committed

    def get(self) -> ConversationState:
        return self._state

    def update(self, state: ConversationState) -> None:
        self._state = state

    async def commit(self, state: ConversationState) -> None:
        self._state = state
        self._committed = True
        logger.debug("state.commit chat={} messages={}", state.chat_id, len(state.messages))
        if self._on_commit is not None:
            await self._on_commit(state)
