"""Renderable display values for the presentation layer."""

from __future__ import annotations

from dataclasses import dataclass

from pixelchat.streaming import StreamableUI, StreamableValue

IMAGE_ALT = "Image generated by DALL-E"


@dataclass(frozen=True)
class UserText:
    content: str


@dataclass(frozen=True)
class BotText:
    """Assistant text; content is static or a live text channel."""

    content: str | StreamableValue

    @property
    def text(self) -> str:
        if isinstance(self.content, StreamableValue):
            return self.content.value
        return self.content


@dataclass(frozen=True)
class Spinner:
    pass


@dataclass(frozen=True)
class ImageLoading:
    pass


@dataclass(frozen=True)
class ImageCard:
    url: str
    width: int
    height: int
    alt: str = IMAGE_ALT

    @property
    def markdown(self) -> str:
        return f"![{self.alt}]({self.url})"


@dataclass(frozen=True)
class ErrorText:
    content: str


@dataclass(frozen=True)
class BotCard:
    """Assistant-side frame around a non-text display."""

    child: ImageLoading | ImageCard | ErrorText


@dataclass(frozen=True)
class Group:
    children: tuple[Display, ...]


type Display = UserText | BotText | Spinner | BotCard | ErrorText | Group
type LiveDisplay = StreamableUI[Display]


@dataclass(frozen=True)
class RenderRecord:
    """One renderable entry of the UI state."""

    id: str
    display: Display | LiveDisplay | None

    def resolved(self) -> Display | None:
        """Return the materialized display, unwrapping a live node."""
        if isinstance(self.display, StreamableUI):
            return self.display.value
        return self.display
