"""Tools offered to the model."""

from .image import ImageInput, ImageTool, OpenAIImageGenerator, image_tool_definition
from .registry import ToolDefinition, ToolInvocation, ToolOutcome, ToolRegistry

__all__ = [
    "ImageInput",
    "ImageTool",
    "OpenAIImageGenerator",
    "ToolDefinition",
    "ToolInvocation",
    "ToolOutcome",
    "ToolRegistry",
    "image_tool_definition",
]
