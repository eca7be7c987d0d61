"""Provider client contract used by the orchestrator and services."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderPayload:
    """Either an inline image (bytes + mime type) or a block of text."""

    text: str | None = None
    image_data: bytes | None = None
    mime_type: str | None = None

    @classmethod
    def from_image(cls, data: bytes, mime_type: str) -> "ProviderPayload":
        return cls(image_data=data, mime_type=mime_type)

    @classmethod
    def from_text(cls, text: str) -> "ProviderPayload":
        return cls(text=text)

    @property
    def is_image(self) -> bool:
        return self.image_data is not None


class ProviderClient(ABC):
    """Sends one payload plus prompt to a generative model."""

    @abstractmethod
    async def send(self, payload: ProviderPayload, prompt: str) -> str:
        """
        Invoke the model.

        Args:
            payload: Image or text content.
            prompt: Rendered prompt text.

        Returns:
            Raw response text (may be empty).

        Raises:
            ProviderTransientError: Retryable failure (429, 5xx, network).
            ProviderPermanentError: Non-retryable failure (401, 403, 400, 413).
        """
        pass


class ProviderClientFactory(ABC):
    """Builds a provider client bound to one credential."""

    @abstractmethod
    def create(self, api_key: str) -> ProviderClient:
        pass
