"""Image generation tool."""

from __future__ import annotations

from typing import Literal, Protocol

from loguru import logger
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from pixelchat.errors import ImageGenerationError
from pixelchat.render import BotCard, Display, ErrorText, ImageCard, ImageLoading
from pixelchat.tools.registry import ToolDefinition, ToolOutcome

TOOL_NAME = "dalle"
TOOL_DESCRIPTION = "Generate an image based on a detailed text prompt."
DEFAULT_SIZE = "1024x1024"
DEFAULT_MODEL = "dall-e-2"
FAILURE_MARKER = "Failed to generate image"
FAILURE_TEXT = "Sorry, there was an error generating the image."

ImageSize = Literal["1792x1024", "1024x1024", "1024x1792"]
ImageModel = Literal["dall-e-2"]


class ImageInput(BaseModel):
    prompt: str = Field(..., description="A detailed description of the image to generate.")
    size: ImageSize = Field(default=DEFAULT_SIZE, description="The size of the requested image.")
    model: ImageModel = Field(default=DEFAULT_MODEL, description="The DALL-E model to use.")


class ImageGenerator(Protocol):
    async def generate(self, *, model: str, prompt: str, n: int, size: str) -> str | None: ...


class OpenAIImageGenerator:
    """Image generator backed by the OpenAI images endpoint."""

    def __init__(self, client: AsyncOpenAI) -> None:
        self._client = client

    @classmethod
    def from_api_key(cls, api_key: str, *, base_url: str | None = None) -> OpenAIImageGenerator:
        return cls(AsyncOpenAI(api_key=api_key, base_url=base_url))

    async def generate(self, *, model: str, prompt: str, n: int, size: str) -> str | None:
        response = await self._client.images.generate(model=model, prompt=prompt, n=n, size=size)  # type: ignore[arg-type]
        if not response.data:
            return None
        return response.data[0].url


def image_dimensions(size: str) -> tuple[int, int]:
    width, _, height = size.partition("x")
    return int(width), int(height)


class ImageTool:
    """Shows a loading card, then the generated image or an apology."""

    def __init__(self, generator: ImageGenerator) -> None:
        self._generator = generator

    def on_start(self, args: ImageInput) -> Display:
        return BotCard(ImageLoading())

    async def resolve(self, args: ImageInput, call_id: str) -> ToolOutcome:
        try:
            url = await self._generator.generate(model=args.model, prompt=args.prompt, n=1, size=args.size)
            if not url:
                raise ImageGenerationError(FAILURE_MARKER)
        except Exception:
            logger.exception("image.generate.error call_id={} model={} size={}", call_id, args.model, args.size)
            return ToolOutcome(result={"error": FAILURE_MARKER}, display=BotCard(ErrorText(FAILURE_TEXT)))

        width, height = image_dimensions(args.size)
        return ToolOutcome(
            result={"imageUrl": url, "width": width, "height": height},
            display=BotCard(ImageCard(url=url, width=width, height=height)),
        )


def image_tool_definition(generator: ImageGenerator) -> ToolDefinition:
    return ToolDefinition(
        name=TOOL_NAME,
        description=TOOL_DESCRIPTION,
        arguments=ImageInput,
        handler=ImageTool(generator),
    )
