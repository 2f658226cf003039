"""Projection of stored history to render records."""

from __future__ import annotations

from pixelchat.render import BotCard, BotText, Display, ErrorText, Group, ImageCard, RenderRecord, UserText
from pixelchat.tools.image import FAILURE_TEXT, TOOL_NAME
from pixelchat.types import (
    AssistantMessage,
    AssistantToolCallMessage,
    ConversationState,
    Message,
    SystemMessage,
    ToolMessage,
    ToolResultPart,
    UserMessage,
)


def project_history(state: ConversationState) -> list[RenderRecord]:
    """Render a stored conversation; ids are stable for an unchanged state."""
    visible = [message for message in state.messages if not isinstance(message, SystemMessage)]
    return [
        RenderRecord(id=f"{state.chat_id}-{index}", display=_display_for(message))
        for index, message in enumerate(visible)
    ]


def _display_for(message: Message) -> Display | None:
    match message:
        case UserMessage(content=content):
            return UserText(content)
        case AssistantMessage(content=content):
            return BotText(content)
        case ToolMessage(parts=parts):
            return Group(tuple(_display_for_result(part) for part in parts))
        case AssistantToolCallMessage() | SystemMessage():
            return None


def _display_for_result(part: ToolResultPart) -> Display:
    url = part.result.get("imageUrl")
    if part.tool_name == TOOL_NAME and part.error is None and isinstance(url, str) and url:
        width = part.result.get("width")
        height = part.result.get("height")
        return BotCard(
            ImageCard(
                url=url,
                width=width if isinstance(width, int) else 0,
                height=height if isinstance(height, int) else 0,
            )
        )
    return BotCard(ErrorText(FAILURE_TEXT))
