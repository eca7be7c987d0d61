"""Credential source backed by one AWS Secrets Manager JSON secret."""

import json
import logging
from typing import Any

from botocore.exceptions import ClientError

from webtoon_translator.models.credential_source import CredentialSource

logger = logging.getLogger(__name__)


class SecretsManagerCredentialSource(CredentialSource):
    """Reads key pools from a secret shaped like::

        {"vision_keys": ["...", "..."], "drive_keys": ["..."]}

    A missing secret or missing scope is an empty pool, not an error.
    """

    def __init__(self, client: Any, secret_name: str):
        """
        Initialize the source.

        Args:
            client: boto3 secretsmanager client instance.
            secret_name: Name or ARN of the secret holding the key pools.
        """
        self._client = client
        self._secret_name = secret_name

    def load_credentials(self, scope: str) -> list[str]:
        try:
            response = self._client.get_secret_value(SecretId=self._secret_name)
        except ClientError as e:
            # Return empty list if secret not found (error surfaces on key request)
            if e.response["Error"]["Code"] == "ResourceNotFoundException":
                logger.warning("Secret not found: %s", self._secret_name)
                return []
            raise

        secret_data = json.loads(response.get("SecretString") or "{}")
        keys = secret_data.get(f"{scope}_keys") or []
        if not isinstance(keys, list):
            logger.warning(
                "Secret %s has non-list value for %s_keys, ignoring",
                self._secret_name,
                scope,
            )
            return []

        credentials = [str(k).strip() for k in keys if str(k).strip()]
        logger.info(
            "Loaded %d keys for scope '%s' from secret %s",
            len(credentials),
            scope,
            self._secret_name,
        )
        return credentials
