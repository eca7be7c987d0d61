import logging

from webtoon_translator.models.credential_source import CredentialSource

logger = logging.getLogger(__name__)


class StaticCredentialSource(CredentialSource):
    """Credential source over an in-memory mapping of scope -> keys.

    Used for the ENV backend (VISION_API_KEYS / DRIVE_API_KEYS) and in tests.
    """

    def __init__(self, credentials: dict[str, list[str]]):
        self._credentials = {scope: list(keys) for scope, keys in credentials.items()}

    def load_credentials(self, scope: str) -> list[str]:
        keys = self._credentials.get(scope, [])
        if not keys:
            logger.warning("No keys configured for scope '%s'", scope)
        return list(keys)
