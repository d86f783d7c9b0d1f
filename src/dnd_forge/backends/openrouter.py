"""OpenAI-compatible text generation backend (OpenRouter by default).

The backend sends the accumulated agent prompt as a single user message and
requests JSON output shaped by the advisory constraint. Transient transport
failures are retried with tenacity; anything else surfaces as BackendError so
the calling agent can spend one of its own attempts on it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from openai import APIConnectionError, APIStatusError, AsyncOpenAI
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dnd_forge.core.cancellation import guarded
from dnd_forge.core.config import AIProviderSettings, get_settings
from dnd_forge.core.exceptions import BackendError, ConfigurationError
from dnd_forge.core.logging import get_logger


if TYPE_CHECKING:
    from dnd_forge.core.cancellation import CancellationToken


logger = get_logger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def build_async_client(settings: AIProviderSettings) -> AsyncOpenAI:
    """Create the async client for the configured text provider.

    Args:
        settings: Text provider settings.

    Returns:
        An AsyncOpenAI client pointed at OpenRouter or OpenAI.

    Raises:
        ConfigurationError: If no API key is configured for the provider.
    """
    api_key = settings.api_key_for_provider()
    if not api_key:
        raise ConfigurationError(
            f"No API key configured for text provider {settings.default_provider!r}",
            config_key=f"{settings.default_provider}_api_key",
        )

    if settings.default_provider == "openrouter":
        return AsyncOpenAI(
            api_key=api_key,
            base_url=settings.base_url or OPENROUTER_BASE_URL,
            timeout=settings.timeout_seconds,
            max_retries=0,
            default_headers={
                "HTTP-Referer": "https://github.com/dnd-forge",
                "X-Title": "DnD Forge",
            },
        )
    return AsyncOpenAI(
        api_key=api_key,
        base_url=settings.base_url,
        timeout=settings.timeout_seconds,
        max_retries=0,
    )


class OpenRouterBackend:
    """GenerationBackend over the chat completions API.

    Attributes:
        model: Model identifier sent with every request.
        temperature: Sampling temperature.
        provider: Provider label used in errors and logs.
    """

    def __init__(
        self,
        *,
        client: Any | None = None,
        model: str | None = None,
        temperature: float | None = None,
        settings: AIProviderSettings | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            client: Preconfigured AsyncOpenAI-compatible client. Built lazily
                from settings when omitted.
            model: Model override.
            temperature: Temperature override.
            settings: Provider settings; defaults to the application settings.
        """
        self._settings = settings or get_settings().ai
        self._client = client
        self.model = model or self._settings.text_model
        self.temperature = self._settings.temperature if temperature is None else temperature
        self.provider = self._settings.default_provider

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = build_async_client(self._settings)
        return self._client

    @staticmethod
    def _response_format(constraint: dict[str, Any]) -> dict[str, Any]:
        if not constraint:
            return {"type": "json_object"}
        return {
            "type": "json_schema",
            "json_schema": {"name": "output", "schema": constraint, "strict": False},
        }

    @retry(
        retry=retry_if_exception_type(APIConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _complete(self, prompt: str, constraint: dict[str, Any]) -> str:
        response = await self._get_client().chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            response_format=self._response_format(constraint),
        )
        if not response.choices:
            raise BackendError(
                "Backend returned no choices",
                model=self.model,
                provider=self.provider,
            )
        return response.choices[0].message.content or ""

    async def call(
        self,
        prompt: str,
        constraint: dict[str, Any],
        cancel: CancellationToken | None = None,
    ) -> str:
        """Submit one generation request.

        Args:
            prompt: Full accumulated prompt.
            constraint: Advisory output schema.
            cancel: Token that aborts the in-flight request.

        Returns:
            Raw response text.

        Raises:
            BackendError: On API or transport failure.
            CancellationError: If ``cancel`` fires first.
        """
        try:
            text = await guarded(self._complete(prompt, constraint), cancel, stage="generation")
        except APIStatusError as exc:
            raise BackendError(
                f"{self.provider} API error: {exc.message}",
                status_code=exc.status_code,
                model=self.model,
                provider=self.provider,
            ) from exc
        except APIConnectionError as exc:
            raise BackendError(
                f"Failed to connect to {self.provider}: {exc}",
                model=self.model,
                provider=self.provider,
            ) from exc

        logger.debug(
            "Generation response received",
            model=self.model,
            response_length=len(text),
        )
        return text


__all__ = ["OpenRouterBackend", "build_async_client", "OPENROUTER_BASE_URL"]
