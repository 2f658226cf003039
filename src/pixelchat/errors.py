"""Application-level exception types for pixelchat."""

from __future__ import annotations


class PixelChatError(Exception):
    """Base exception for pixelchat."""


class ConfigurationError(PixelChatError):
    """Base exception for configuration and startup validation errors."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when an API key is required but missing."""


class StreamClosedError(PixelChatError):
    """Raised when a streamable value is written after it has been sealed."""


class ToolError(PixelChatError):
    """Base exception for tool dispatch failures."""


class ToolNotFoundError(ToolError):
    """Raised when the model requests a tool that is not registered."""


class ToolArgumentsError(ToolError):
    """Raised when tool arguments fail validation."""


class ModelStreamError(PixelChatError):
    """Raised when the model stream reports an error event."""


class ImageGenerationError(PixelChatError):
    """Raised when the image API answers without a usable image."""
