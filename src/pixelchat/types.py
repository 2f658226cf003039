"""Conversation data model and its persisted payload codec."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Literal

type Role = Literal["user", "assistant", "system", "tool"]

ID_LENGTH = 16


def new_id() -> str:
    """Return a fresh opaque identifier."""
    return uuid.uuid4().hex[:ID_LENGTH]


@dataclass(frozen=True)
class ToolCallPart:
    tool_name: str
    call_id: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultPart:
    tool_name: str
    call_id: str
    result: dict[str, Any] = field(default_factory=dict)

    @property
    def error(self) -> str | None:
        value = self.result.get("error")
        return str(value) if value is not None else None


@dataclass(frozen=True)
class UserMessage:
    id: str
    content: str
    role: Role = field(default="user", init=False)


@dataclass(frozen=True)
class AssistantMessage:
    id: str
    content: str
    role: Role = field(default="assistant", init=False)


@dataclass(frozen=True)
class AssistantToolCallMessage:
    id: str
    parts: tuple[ToolCallPart, ...]
    role: Role = field(default="assistant", init=False)


@dataclass(frozen=True)
class ToolMessage:
    id: str
    parts: tuple[ToolResultPart, ...]
    role: Role = field(default="tool", init=False)


@dataclass(frozen=True)
class SystemMessage:
    id: str
    content: str
    role: Role = field(default="system", init=False)


type Message = UserMessage | AssistantMessage | AssistantToolCallMessage | ToolMessage | SystemMessage


@dataclass(frozen=True)
class ConversationState:
    """Serializable history of one chat."""

    chat_id: str
    messages: tuple[Message, ...] = ()

    def append(self, *messages: Message) -> ConversationState:
        return replace(self, messages=(*self.messages, *messages))

    def first_user_content(self) -> str | None:
        for message in self.messages:
            if isinstance(message, UserMessage):
                return message.content
        return None


def new_state() -> ConversationState:
    return ConversationState(chat_id=new_id())


@dataclass(frozen=True)
class Chat:
    """Persisted chat record."""

    id: str
    title: str
    user_id: str
    created_at: datetime
    messages: tuple[Message, ...]
    path: str

    def to_state(self) -> ConversationState:
        return ConversationState(chat_id=self.id, messages=self.messages)


def message_to_payload(message: Message) -> dict[str, Any]:
    match message:
        case AssistantToolCallMessage(parts=parts):
            content: str | list[dict[str, Any]] = [
                {
                    "type": "tool-call",
                    "toolName": part.tool_name,
                    "toolCallId": part.call_id,
                    "args": dict(part.arguments),
                }
                for part in parts
            ]
        case ToolMessage(parts=parts):
            content = [
                {
                    "type": "tool-result",
                    "toolName": part.tool_name,
                    "toolCallId": part.call_id,
                    "result": dict(part.result),
                }
                for part in parts
            ]
        case UserMessage(content=text) | AssistantMessage(content=text) | SystemMessage(content=text):
            content = text
    return {"id": message.id, "role": message.role, "content": content}


def message_from_payload(payload: object) -> Message | None:
    if not isinstance(payload, Mapping):
        return None
    message_id = payload.get("id")
    role = payload.get("role")
    content = payload.get("content")
    if not isinstance(message_id, str) or not isinstance(role, str):
        return None

    if isinstance(content, str):
        if role == "user":
            return UserMessage(message_id, content)
        if role == "assistant":
            return AssistantMessage(message_id, content)
        if role == "system":
            return SystemMessage(message_id, content)
        return None

    if not isinstance(content, list):
        return None
    if role == "assistant":
        calls = tuple(part for part in map(_tool_call_from_payload, content) if part is not None)
        return AssistantToolCallMessage(message_id, calls) if calls else None
    if role == "tool":
        results = tuple(part for part in map(_tool_result_from_payload, content) if part is not None)
        return ToolMessage(message_id, results) if results else None
    return None


def messages_from_payload(payloads: Iterable[object]) -> tuple[Message, ...]:
    return tuple(message for message in map(message_from_payload, payloads) if message is not None)


def _tool_call_from_payload(part: object) -> ToolCallPart | None:
    if not isinstance(part, Mapping) or part.get("type") != "tool-call":
        return None
    name = part.get("toolName")
    call_id = part.get("toolCallId")
    args = part.get("args")
    if not isinstance(name, str) or not isinstance(call_id, str):
        return None
    return ToolCallPart(name, call_id, dict(args) if isinstance(args, Mapping) else {})


def _tool_result_from_payload(part: object) -> ToolResultPart | None:
    if not isinstance(part, Mapping) or part.get("type") != "tool-result":
        return None
    name = part.get("toolName")
    call_id = part.get("toolCallId")
    result = part.get("result")
    if not isinstance(name, str) or not isinstance(call_id, str):
        return None
    return ToolResultPart(name, call_id, dict(result) if isinstance(result, Mapping) else {})
