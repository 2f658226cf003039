"""Configuration management for pixelchat."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pixelchat.errors import ApiKeyNotConfiguredError
from pixelchat.model import ModelConfig

MODEL_CHOICES = ("gpt-4o", "gpt-4o-mini", "o1-preview", "o1-mini")
DEFAULT_PROVIDER = "openai"


def default_system_prompt(today: str | None = None) -> str:
    """Render the default assistant instructions for the given date."""
    current_date = today or datetime.now(UTC).date().isoformat()
    return (
        "You are ChatGPT, a large language model trained by OpenAI, based on the GPT-4 architecture. "
        f"Knowledge cutoff: 2023-10. Current date: {current_date}.\n\n"
        "Capabilities:\n"
        "- Image input capabilities are enabled.\n"
        "- You provide direct and concise answers for straightforward questions.\n"
        "- You have the ability to generate images based on detailed text descriptions.\n"
        "- You can assist with a wide range of tasks, including answering questions, "
        "providing explanations, generating text, and more.\n\n"
        "Behavior:\n"
        "- Provide clear, concise, and accurate responses.\n"
        "- When asked to generate images, follow the guidelines and policies regarding image creation.\n"
        "- Always strive to be helpful, polite, and respectful.\n\n"
        "Tools:\n"
        "- You have access to the dalle tool, which you can use to enhance your responses "
        "and provide more detailed assistance."
    )


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="PIXELCHAT_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Configuration
    model: str = Field(default=f"{DEFAULT_PROVIDER}:gpt-4o-mini", description="provider:model identifier")
    api_key: str | None = Field(default=None, description="API key for the LLM provider")
    api_base: str | None = Field(default=None, description="Optional API base URL")
    openai_api_key: str | None = Field(default=None, description="API key for the image generation API")

    # Turn Configuration
    system_prompt: str | None = Field(default=None, description="System instructions for the assistant")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    top_p: float = Field(default=1.0, description="Nucleus sampling threshold")

    # Session and Storage
    home: Path | None = Field(default=None, description="Directory holding stored chats")
    user_id: str | None = Field(default=None, description="Session identity; unset disables persistence")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")

    def resolve_home(self) -> Path:
        return (self.home or Path.home() / ".pixelchat").expanduser()

    @property
    def resolved_api_key(self) -> str:
        key = self.api_key or self.openai_api_key
        if not key:
            raise ApiKeyNotConfiguredError("Set PIXELCHAT_API_KEY or PIXELCHAT_OPENAI_API_KEY")
        return key

    @property
    def resolved_image_api_key(self) -> str:
        key = self.openai_api_key or self.api_key
        if not key:
            raise ApiKeyNotConfiguredError("Set PIXELCHAT_OPENAI_API_KEY to enable image generation")
        return key

    def turn_config(
        self,
        *,
        model: str | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        system: str | None = None,
    ) -> ModelConfig:
        """Build per-turn model parameters, falling back to the configured values."""
        return ModelConfig(
            model=qualify_model(model) if model else self.model,
            system=system or self.system_prompt or default_system_prompt(),
            temperature=self.temperature if temperature is None else temperature,
            top_p=self.top_p if top_p is None else top_p,
        )


def qualify_model(model: str) -> str:
    """Prefix a bare model name with the default provider."""
    if ":" in model:
        return model
    return f"{DEFAULT_PROVIDER}:{model}"


def get_settings() -> Settings:
    # pydantic-settings loads the environment and the .env file
    return Settings()
