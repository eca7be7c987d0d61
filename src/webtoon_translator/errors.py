"""Exception hierarchy for credential, provider and batch failures."""


class ConfigurationError(Exception):
    """Credentials or provider configuration are unusable.

    Fatal for a whole batch: never retried per item.
    """


class NoCredentialsError(ConfigurationError):
    """A credential scope has no keys after initialization."""

    def __init__(self, scope: str):
        self.scope = scope
        super().__init__(
            f"No API keys configured for scope '{scope}'. Configure API keys and retry."
        )


class ProviderError(Exception):
    """Base class for failures returned by the generative provider."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderTransientError(ProviderError):
    """Timeouts, rate limits (429) and server errors (5xx). Retried per item."""


class ProviderPermanentError(ProviderError):
    """Auth (401/403), malformed request or payload too large. Not retried."""


class ItemTimeoutError(ProviderTransientError):
    """A single attempt did not settle within the per-item timeout."""

    def __init__(self, timeout_ms: int):
        super().__init__(f"operation timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class InvalidBatchError(ValueError):
    """Batch configuration or item list is invalid."""


class InvalidRequestError(ValueError):
    """Handler event is missing a required value or names an unknown option."""


class ImagePreparationError(ProviderPermanentError):
    """Page image cannot be sent to the provider (unreadable, too small)."""


class EmptyResponseError(ProviderTransientError):
    """The model answered without any usable translation text."""
