"""Configuration management for DnD Forge.

This module provides centralized configuration management using pydantic-settings,
supporting environment variables, .env files, and runtime configuration overrides.
All sensitive values (API keys) are handled securely using SecretStr.

Example:
    >>> from dnd_forge.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.ai.max_retries
    3

Environment Variables:
    DND_FORGE_OPENROUTER_API_KEY: OpenRouter API key (text generation)
    DND_FORGE_OPENAI_API_KEY: OpenAI API key (DALL-E images, or direct text calls)
    DND_FORGE_GEMINI_API_KEY: Google Gemini API key (Imagen images)
    DND_FORGE_TEXT_MODEL: Model identifier for text generation
    DND_FORGE_IMAGE_PROVIDER: Image backend ("dall-e-3" or "imagen-3")
    DND_FORGE_DATABASE_PATH: Path to the SQLite host/compendium database
    DND_FORGE_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dnd_forge.core.constants import COMPENDIUM_ALLOW_LIST, DEFAULT_CANDIDATE_LIMIT
from dnd_forge.core.exceptions import ConfigurationError


class AIProviderSettings(BaseSettings):
    """Configuration for the text-generation backend.

    Attributes:
        openrouter_api_key: OpenRouter API key (primary text provider).
        openai_api_key: OpenAI API key.
        gemini_api_key: Google Gemini API key.
        default_provider: Which provider serves text generation.
        text_model: Model identifier used by every agent.
        base_url: Override for the OpenAI-compatible endpoint.
        max_retries: Retry budget per agent call (attempts = retries + 1).
        timeout_seconds: Backend request timeout in seconds.
        temperature: Sampling temperature for generation calls.
    """

    model_config = SettingsConfigDict(
        env_prefix="DND_FORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    openrouter_api_key: SecretStr | None = Field(
        default=None,
        description="OpenRouter API key (primary)",
    )
    openai_api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI API key",
    )
    gemini_api_key: SecretStr | None = Field(
        default=None,
        description="Google Gemini API key",
    )
    default_provider: Literal["openrouter", "openai"] = Field(
        default="openrouter",
        description="Provider used for text generation",
    )
    text_model: str = Field(
        default="google/gemini-2.0-flash-001",
        description="Model used by all generative agents",
    )
    base_url: str | None = Field(
        default=None,
        description="Override for the OpenAI-compatible API base URL",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retry budget per agent call",
    )
    timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        le=600,
        description="Backend request timeout",
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature",
    )

    @model_validator(mode="after")
    def validate_api_key_for_provider(self) -> "AIProviderSettings":
        """Ensure a direct OpenAI provider has a key configured.

        OpenRouter is allowed to start without a key so that offline uses
        (tests, replaying stored compendia) still work; the backend raises
        when it is actually called.

        Returns:
            Self if validation passes.

        Raises:
            ConfigurationError: If the OpenAI provider has no API key.
        """
        if self.default_provider == "openai" and not self.openai_api_key:
            raise ConfigurationError(
                "OpenAI is set as default provider but OPENAI_API_KEY is not configured",
                config_key="openai_api_key",
            )
        return self

    def api_key_for_provider(self) -> str | None:
        """Return the plain API key of the configured text provider."""
        key = self.openrouter_api_key if self.default_provider == "openrouter" else self.openai_api_key
        return key.get_secret_value() if key else None


class ImageSettings(BaseSettings):
    """Configuration for portrait and item-icon fabrication.

    Attributes:
        provider: Image backend to use.
        size: Requested image size (DALL-E only; Imagen is fixed 1:1).
        save_dir: Directory, relative to the content store root, for uploads.
        generate_item_icons: Fabricate icons for custom items during a run.
    """

    model_config = SettingsConfigDict(
        env_prefix="DND_FORGE_IMAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider: Literal["dall-e-3", "imagen-3"] = Field(
        default="dall-e-3",
        description="Image backend",
    )
    size: str = Field(
        default="1024x1024",
        pattern=r"^\d+x\d+$",
        description="Requested image size",
    )
    save_dir: str = Field(
        default="ai-images",
        description="Upload directory inside the content store",
    )
    storage_source: str = Field(
        default="data",
        description="Content store source the uploads are written to",
    )
    generate_item_icons: bool = Field(
        default=False,
        description="Fabricate icons for custom items",
    )


class CompendiumSettings(BaseSettings):
    """Configuration for the content index.

    Attributes:
        collections: Allow-list of entity types per source collection.
        candidate_limit: Candidates offered to the Quartermaster per request.
    """

    model_config = SettingsConfigDict(
        env_prefix="DND_FORGE_COMPENDIUM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    collections: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in COMPENDIUM_ALLOW_LIST.items()},
        description="Allowed entity types per source collection",
    )
    candidate_limit: int = Field(
        default=DEFAULT_CANDIDATE_LIMIT,
        ge=1,
        le=10,
        description="Candidates per component request",
    )

    @field_validator("collections", mode="after")
    @classmethod
    def validate_collections(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        """Reject collections that allow no entity types.

        Raises:
            ConfigurationError: If a collection's allow-list is empty.
        """
        for collection_id, types in value.items():
            if not types:
                raise ConfigurationError(
                    f"Collection {collection_id!r} has an empty type allow-list",
                    config_key="collections",
                )
        return value


class StorageSettings(BaseSettings):
    """Configuration for local persistence.

    Attributes:
        database_path: SQLite file holding actors and compendium packs.
        content_root: Root directory of the filesystem content store.
    """

    model_config = SettingsConfigDict(
        env_prefix="DND_FORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_path: Path = Field(
        default=Path("data/dnd_forge.db"),
        description="Path to SQLite database",
    )
    content_root: Path = Field(
        default=Path("data/content"),
        description="Root of the content store",
    )

    @field_validator("database_path", "content_root", mode="after")
    @classmethod
    def expand_user(cls, value: Path) -> Path:
        """Expand a leading ``~`` in configured paths."""
        return value.expanduser()


class Settings(BaseSettings):
    """Main application settings aggregating all configuration domains.

    Attributes:
        app_name: Application name.
        app_version: Application version string.
        debug: Enable debug mode.
        log_level: Application logging level.
        log_json: Emit JSON log lines instead of console output.
        ai: Text-generation settings.
        images: Image fabrication settings.
        compendium: Content index settings.
        storage: Local persistence settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="DND_FORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    app_name: str = Field(
        default="DnD Forge",
        description="Application name",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON",
    )

    ai: AIProviderSettings = Field(default_factory=AIProviderSettings)
    images: ImageSettings = Field(default_factory=ImageSettings)
    compendium: CompendiumSettings = Field(default_factory=CompendiumSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The application Settings instance.

    Raises:
        ConfigurationError: If required configuration is missing or invalid.
    """
    try:
        return Settings()
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(
            f"Failed to load application settings: {exc}",
            details={"original_error": str(exc)},
        ) from exc


def clear_settings_cache() -> None:
    """Clear the settings cache, forcing a reload on next access."""
    get_settings.cache_clear()


__all__ = [
    "AIProviderSettings",
    "ImageSettings",
    "CompendiumSettings",
    "StorageSettings",
    "Settings",
    "get_settings",
    "clear_settings_cache",
]
