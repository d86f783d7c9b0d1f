"""Image generation backends: OpenAI DALL-E 3 and Google Imagen 3."""

from __future__ import annotations

import base64
import binascii
from typing import TYPE_CHECKING, Any

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from dnd_forge.backends.base import GeneratedImage
from dnd_forge.core.cancellation import guarded
from dnd_forge.core.config import AIProviderSettings, ImageSettings, get_settings
from dnd_forge.core.exceptions import ConfigurationError, ImageGenerationError
from dnd_forge.core.logging import get_logger


if TYPE_CHECKING:
    from dnd_forge.backends.base import ImageBackend
    from dnd_forge.core.cancellation import CancellationToken


logger = get_logger(__name__)

DALL_E_MODEL = "dall-e-3"
IMAGEN_MODEL = "imagen-3.0-generate-002"
IMAGEN_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:predict"


def _decode(b64: str, *, provider: str) -> bytes:
    try:
        return base64.b64decode(b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageGenerationError(
            "Image payload is not valid base64",
            provider=provider,
        ) from exc


# =============================================================================
# OpenAI
# =============================================================================


class OpenAIImageBackend:
    """DALL-E 3 through the OpenAI images API. ``size`` is passed through."""

    provider = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        client: Any | None = None,
        http_client: httpx.AsyncClient | None = None,
        model: str = DALL_E_MODEL,
    ) -> None:
        if client is None and not api_key:
            raise ConfigurationError(
                "OpenAI image generation requires an API key",
                config_key="openai_api_key",
            )
        self._client = client or AsyncOpenAI(api_key=api_key, max_retries=0)
        self._http = http_client
        self.model = model

    async def _download(self, url: str) -> bytes:
        client = self._http or httpx.AsyncClient()
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ImageGenerationError(
                f"Failed to download generated image: {exc}",
                model=self.model,
                provider=self.provider,
            ) from exc
        finally:
            if self._http is None:
                await client.aclose()
        return response.content

    async def _request(self, prompt: str, size: str) -> GeneratedImage:
        try:
            response = await self._client.images.generate(
                model=self.model,
                prompt=prompt,
                size=size,
                n=1,
                response_format="b64_json",
            )
        except APIStatusError as exc:
            raise ImageGenerationError(
                f"OpenAI error {exc.status_code}: {exc.message}",
                model=self.model,
                provider=self.provider,
            ) from exc
        except APIConnectionError as exc:
            raise ImageGenerationError(
                f"Failed to connect to OpenAI: {exc}",
                model=self.model,
                provider=self.provider,
            ) from exc

        item = response.data[0] if response.data else None
        if item is not None and item.b64_json:
            return GeneratedImage(_decode(item.b64_json, provider=self.provider), "image/png")
        if item is not None and item.url:
            return GeneratedImage(await self._download(item.url), "image/png")
        raise ImageGenerationError(
            "No image data returned from OpenAI",
            model=self.model,
            provider=self.provider,
        )

    async def generate(
        self,
        prompt: str,
        size: str,
        cancel: CancellationToken | None = None,
    ) -> GeneratedImage:
        """Generate one PNG image."""
        image = await guarded(self._request(prompt, size), cancel, stage="image")
        logger.info("Image generated", provider=self.provider, bytes=len(image.data))
        return image


# =============================================================================
# Google Imagen
# =============================================================================


class ImagenImageBackend:
    """Imagen 3 through the Generative Language predict endpoint.

    Imagen only supports fixed aspect ratios, so ``size`` is ignored and a
    square image is always requested.
    """

    provider = "gemini"

    def __init__(
        self,
        api_key: str | None,
        *,
        http_client: httpx.AsyncClient | None = None,
        model: str = IMAGEN_MODEL,
        timeout: float = 120.0,
    ) -> None:
        if not api_key:
            raise ConfigurationError(
                "Imagen image generation requires a Gemini API key",
                config_key="gemini_api_key",
            )
        self._api_key = api_key
        self._http = http_client
        self.model = model
        self.timeout = timeout

    def _payload(self, prompt: str) -> dict[str, Any]:
        return {
            "instances": [{"prompt": prompt}],
            "parameters": {
                "sampleCount": 1,
                "aspectRatio": "1:1",
                "personGeneration": "ALLOW_ADULT",
            },
        }

    async def _request(self, prompt: str) -> GeneratedImage:
        url = IMAGEN_ENDPOINT.format(model=self.model)
        client = self._http or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.post(
                url,
                params={"key": self._api_key},
                json=self._payload(prompt),
            )
        except httpx.HTTPError as exc:
            raise ImageGenerationError(
                f"Failed to reach Imagen endpoint: {exc}",
                model=self.model,
                provider=self.provider,
            ) from exc
        finally:
            if self._http is None:
                await client.aclose()

        if response.status_code >= 400:
            try:
                message = response.json().get("error", {}).get("message") or response.reason_phrase
            except ValueError:
                message = response.reason_phrase
            raise ImageGenerationError(
                f"Gemini error {response.status_code}: {message}",
                model=self.model,
                provider=self.provider,
            )

        predictions = response.json().get("predictions") or []
        b64 = predictions[0].get("bytesBase64Encoded") if predictions else None
        if not b64:
            raise ImageGenerationError(
                "No image data returned from Gemini",
                model=self.model,
                provider=self.provider,
            )
        return GeneratedImage(_decode(b64, provider=self.provider), "image/jpeg")

    async def generate(
        self,
        prompt: str,
        size: str,
        cancel: CancellationToken | None = None,
    ) -> GeneratedImage:
        """Generate one JPEG image."""
        image = await guarded(self._request(prompt), cancel, stage="image")
        logger.info("Image generated", provider=self.provider, bytes=len(image.data))
        return image


def create_image_backend(
    images: ImageSettings | None = None,
    ai: AIProviderSettings | None = None,
) -> ImageBackend:
    """Build the image backend selected in settings.

    Raises:
        ConfigurationError: If the selected provider has no API key.
    """
    settings = get_settings() if images is None or ai is None else None
    images = images or settings.images
    ai = ai or settings.ai

    if images.provider == "imagen-3":
        key = ai.gemini_api_key.get_secret_value() if ai.gemini_api_key else None
        return ImagenImageBackend(key, timeout=ai.timeout_seconds)
    key = ai.openai_api_key.get_secret_value() if ai.openai_api_key else None
    return OpenAIImageBackend(key)


__all__ = [
    "OpenAIImageBackend",
    "ImagenImageBackend",
    "create_image_backend",
    "DALL_E_MODEL",
    "IMAGEN_MODEL",
]
