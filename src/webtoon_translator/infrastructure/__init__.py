"""Infrastructure package for webtoon translator."""

from webtoon_translator.infrastructure.gemini_client import GeminiClient, GeminiClientFactory
from webtoon_translator.infrastructure.s3_client import S3ImageStore
from webtoon_translator.infrastructure.secrets_credential_source import (
    SecretsManagerCredentialSource,
)
from webtoon_translator.infrastructure.static_credential_source import (
    StaticCredentialSource,
)

__all__ = [
    "GeminiClient",
    "GeminiClientFactory",
    "S3ImageStore",
    "SecretsManagerCredentialSource",
    "StaticCredentialSource",
]
