"""Tests for configuration and the dependency container."""

from unittest.mock import MagicMock, patch

import pytest

from webtoon_translator.config import Config
from webtoon_translator.infrastructure.dependency_injection import DependenciesContainer
from webtoon_translator.infrastructure.secrets_credential_source import (
    SecretsManagerCredentialSource,
)
from webtoon_translator.infrastructure.static_credential_source import StaticCredentialSource
from webtoon_translator.services.batch_orchestrator import BatchConfig
from webtoon_translator.services.text_extractor import TextExtractionService


class TestConfig:
    """Tests for Config."""

    @patch.dict(
        "os.environ",
        {
            "VISION_API_KEYS": "k1, k2,,k3",
            "BATCH_CONCURRENCY": "5",
            "ITEM_TIMEOUT_MS": "1500",
        },
    )
    def test_env_overrides(self):
        """Test environment variables take priority and keys are split."""
        config = Config()

        assert config.vision_api_keys == ["k1", "k2", "k3"]
        assert config.credentials_for("vision") == ["k1", "k2", "k3"]
        assert config.batch_concurrency == 5
        assert config.item_timeout_ms == 1500

    def test_unknown_scope_has_no_keys(self):
        """Test credentials_for returns nothing for an unknown scope."""
        assert Config().credentials_for("audio") == []

    def test_batch_config_from_config(self):
        """Test batch defaults are built from the configuration."""
        config = Config(batch_concurrency=4, item_timeout_ms=2000, max_retries=1, retry_delay_ms=10)

        batch = BatchConfig.from_config(config)

        assert batch == BatchConfig(concurrency=4, timeout_ms=2000, max_retries=1, retry_delay_ms=10)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"credential_backend": "VAULT"},
            {"credential_backend": "SECRETS_MANAGER", "credentials_secret_name": ""},
            {"batch_concurrency": 0},
            {"max_batch_size": 0},
        ],
    )
    def test_validate_rejects_invalid(self, overrides):
        """Test validate raises for unusable settings."""
        with pytest.raises(ValueError):
            Config(**overrides).validate()


class TestDependenciesContainer:
    """Tests for DependenciesContainer wiring."""

    @patch.dict("os.environ", {"CREDENTIAL_BACKEND": "ENV", "VISION_API_KEYS": "k1,k2"})
    def test_env_backend_uses_static_source(self):
        """Test the ENV backend reads keys from configuration."""
        container = DependenciesContainer()

        source = container.credential_source()

        assert isinstance(source, StaticCredentialSource)
        assert source.load_credentials("vision") == ["k1", "k2"]

    @patch.dict(
        "os.environ",
        {"CREDENTIAL_BACKEND": "SECRETS_MANAGER", "CREDENTIALS_SECRET_NAME": "keys"},
    )
    def test_secrets_backend_uses_secrets_manager(self):
        """Test the SECRETS_MANAGER backend builds a secrets client."""
        container = DependenciesContainer()
        session = MagicMock()
        container.session.override(session)

        source = container.credential_source()

        assert isinstance(source, SecretsManagerCredentialSource)
        session.client.assert_called_once_with("secretsmanager")

    def test_services_share_pool_and_orchestrator(self):
        """Test services are singletons sharing one pool manager."""
        container = DependenciesContainer()
        container.session.override(MagicMock())

        extraction = container.text_extraction_service()
        quality = container.quality_service()

        assert isinstance(extraction, TextExtractionService)
        assert extraction is container.text_extraction_service()
        assert extraction._pool_manager is quality._pool_manager
