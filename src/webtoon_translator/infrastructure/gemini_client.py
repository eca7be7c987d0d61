"""Gemini adapter implementing the provider client contract."""

import logging
from typing import Any

from google import genai
from google.genai import errors, types

from webtoon_translator.errors import (
    ProviderError,
    ProviderPermanentError,
    ProviderTransientError,
)
from webtoon_translator.models.provider import (
    ProviderClient,
    ProviderClientFactory,
    ProviderPayload,
)

logger = logging.getLogger(__name__)

# Rate limits, request timeouts and server-side failures are worth retrying
TRANSIENT_STATUS_CODES = {408, 429}


def classify_api_error(error: errors.APIError) -> ProviderError:
    """Map an SDK error to the retryable / non-retryable taxonomy."""
    code = getattr(error, "code", None)
    message = f"Gemini API error {code}: {getattr(error, 'message', None) or error}"
    if code in TRANSIENT_STATUS_CODES or (isinstance(code, int) and code >= 500):
        return ProviderTransientError(message, status_code=code)
    return ProviderPermanentError(message, status_code=code)


class GeminiClient(ProviderClient):
    """Sends image or text payloads to one Gemini model with one API key."""

    def __init__(
        self,
        client: Any,
        model_name: str = "gemini-2.5-pro",
        temperature: float = 0.2,
        max_tokens: int = 8192,
    ):
        """
        Initialize Gemini client wrapper.

        Args:
            client: google.genai Client instance bound to an API key.
            model_name: Gemini model to call.
            temperature: Sampling temperature.
            max_tokens: Maximum output tokens.
        """
        self._client = client
        self._model_name = model_name
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def model_name(self) -> str:
        return self._model_name

    def _build_contents(self, payload: ProviderPayload, prompt: str) -> list:
        if payload.is_image:
            return [
                types.Part.from_bytes(
                    data=payload.image_data,
                    mime_type=payload.mime_type or "image/jpeg",
                ),
                prompt,
            ]
        if payload.text:
            return [prompt, payload.text]
        return [prompt]

    async def send(self, payload: ProviderPayload, prompt: str) -> str:
        config = types.GenerateContentConfig(
            temperature=self._temperature,
            max_output_tokens=self._max_tokens,
        )

        try:
            response = await self._client.aio.models.generate_content(
                model=self._model_name,
                contents=self._build_contents(payload, prompt),
                config=config,
            )
        except errors.APIError as e:
            error = classify_api_error(e)
            logger.error("Gemini request failed: %s", error)
            raise error from e

        text = response.text or ""
        logger.info(
            "Gemini %s response received, length: %d chars", self._model_name, len(text)
        )
        return text


class GeminiClientFactory(ProviderClientFactory):
    """Creates (and reuses) one GeminiClient per API key."""

    def __init__(
        self,
        model_name: str,
        temperature: float = 0.2,
        max_tokens: int = 8192,
    ):
        self._model_name = model_name
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._clients: dict[str, GeminiClient] = {}

    def create(self, api_key: str) -> ProviderClient:
        client = self._clients.get(api_key)
        if client is None:
            client = GeminiClient(
                genai.Client(api_key=api_key),
                model_name=self._model_name,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
            self._clients[api_key] = client
        return client
