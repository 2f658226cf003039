"""Tool definitions, argument validation and logged dispatch."""

from __future__ import annotations

import builtins
import json
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger
from pydantic import BaseModel, ValidationError
from republic import Tool

from pixelchat.errors import ToolArgumentsError, ToolNotFoundError
from pixelchat.render import Display


def _shorten_text(text: str, width: int = 30, placeholder: str = "...") -> str:
    """Shorten text to width characters, cutting in the middle of words if needed."""
    if len(text) <= width:
        return text

    available = width - len(placeholder)
    if available <= 0:
        return placeholder

    return text[:available] + placeholder


@dataclass(frozen=True)
class ToolOutcome:
    """Final tool output: the persisted result and the terminal display."""

    result: dict[str, Any]
    display: Display

    @property
    def ok(self) -> bool:
        return "error" not in self.result


class ToolHandler(Protocol):
    """Two-phase handler: an immediate start display, then the final outcome.

    ``resolve`` must not raise for expected failures; it reports them as an
    outcome whose result carries an ``error`` key.
    """

    def on_start(self, args: Any) -> Display: ...

    async def resolve(self, args: Any, call_id: str) -> ToolOutcome: ...


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    arguments: type[BaseModel]
    handler: ToolHandler

    def schema(self) -> dict[str, Any]:
        return self.arguments.model_json_schema()


@dataclass(frozen=True)
class ToolInvocation:
    """Validated call of one tool, ready to run."""

    definition: ToolDefinition
    call_id: str
    args: BaseModel

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def arguments(self) -> dict[str, Any]:
        return self.args.model_dump()

    def on_start(self) -> Display:
        return self.definition.handler.on_start(self.args)

    async def resolve(self) -> ToolOutcome:
        _log_tool_call(self.name, self.call_id, self.arguments)
        start = time.monotonic()
        try:
            outcome = await self.definition.handler.resolve(self.args, self.call_id)
        except Exception:
            logger.exception("tool.call.error name={}", self.name)
            raise
        finally:
            duration = time.monotonic() - start
            logger.info("tool.call.end name={} duration={:.3f}ms", self.name, duration * 1000)
        if not outcome.ok:
            logger.warning("tool.call.failed name={} error={}", self.name, outcome.result.get("error"))
        return outcome


class ToolRegistry:
    """Registry of tools offered to the model."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, definition: ToolDefinition) -> None:
        if definition.name in self._tools:
            raise ValueError(f"Duplicate tool name: {definition.name}")
        self._tools[definition.name] = definition

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def definitions(self) -> builtins.list[ToolDefinition]:
        return sorted(self._tools.values(), key=lambda item: item.name)

    def prepare(self, name: str, call_id: str, raw_args: Mapping[str, Any] | str | None) -> ToolInvocation:
        """Validate raw model arguments and apply declared defaults."""
        definition = self.get(name)
        if definition is None:
            raise ToolNotFoundError(name)

        payload = decode_arguments(raw_args)
        try:
            args = definition.arguments.model_validate(payload)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(part) for part in error["loc"]) or "-" for error in exc.errors())
            raise ToolArgumentsError(f"{name}: {fields}") from exc
        return ToolInvocation(definition=definition, call_id=call_id, args=args)

    def model_tools(self) -> builtins.list[Tool]:
        # No handlers: the orchestrator dispatches tool calls itself.
        return [
            Tool(
                name=definition.name,
                description=definition.description,
                parameters=definition.schema(),
                handler=None,
            )
            for definition in self.definitions()
        ]


def decode_arguments(raw_args: Mapping[str, Any] | str | None) -> dict[str, Any]:
    if raw_args is None:
        return {}
    if isinstance(raw_args, str):
        if not raw_args.strip():
            return {}
        try:
            decoded = json.loads(raw_args)
        except json.JSONDecodeError as exc:
            raise ToolArgumentsError(f"arguments are not valid JSON: {exc.msg}") from exc
        if not isinstance(decoded, dict):
            raise ToolArgumentsError("arguments must be a JSON object")
        return decoded
    return dict(raw_args)


def _log_tool_call(name: str, call_id: str, kwargs: dict[str, Any]) -> None:
    params: list[str] = []
    for key, value in kwargs.items():
        try:
            rendered = json.dumps(value, ensure_ascii=False)
        except TypeError:
            rendered = repr(value)
        value = _shorten_text(rendered, width=30, placeholder="...")
        if value.startswith('"') and not value.endswith('"'):
            value = value + '"'
        params.append(f"{key}={value}")
    logger.info("tool.call.start name={} call_id={} {{ {} }}", name, call_id, ", ".join(params))


def recorded_arguments(raw_args: Mapping[str, Any] | str | None) -> dict[str, Any]:
    """Arguments as the model sent them, kept for history even when invalid."""
    try:
        return decode_arguments(raw_args)
    except ToolArgumentsError:
        return {"raw": raw_args}
