"""Runtime logging helpers."""

from __future__ import annotations

import contextlib
import sys
from collections.abc import Iterator
from contextvars import ContextVar

import loguru
from loguru import logger

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<6} | {name}:{function}:{line} | {extra[chat]} | {message}"
_chat_context: ContextVar[str] = ContextVar("chat", default="-")
_CONFIGURED_LEVEL: str | None = None


def current_chat() -> str:
    """Get the id of the chat whose turn is running in this context."""
    return _chat_context.get()


@contextlib.contextmanager
def chat_context(chat_id: str) -> Iterator[None]:
    token = _chat_context.set(chat_id)
    try:
        yield
    finally:
        _chat_context.reset(token)


def configure_logging(level: str = "INFO") -> None:
    """Configure process-level logging once."""

    def inject_context(record: loguru.Record) -> None:
        record["extra"]["chat"] = current_chat()

    global _CONFIGURED_LEVEL
    level = level.upper()
    if level == _CONFIGURED_LEVEL:
        return

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=_LOG_FORMAT,
        backtrace=False,
        diagnose=False,
    )
    logger.configure(patcher=inject_context)
    _CONFIGURED_LEVEL = level
