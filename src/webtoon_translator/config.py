"""Configuration management for the webtoon translator core."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env if exists (local dev only, no-op in Lambda)
load_dotenv()


def _load_json_config(filename: str) -> dict:
    """Load configuration from JSON file in .config directory."""
    config_path = Path(__file__).parent.parent.parent / ".config" / filename
    if config_path.exists():
        with open(config_path, "r") as f:
            return json.load(f)
    return {}


# Load config files
_config_dev = _load_json_config("config.dev.json")
_config_secrets = _load_json_config("config.secrets.dev.json")


def _get_config(key: str, default: str = "") -> str:
    """Get config value with priority: env var > json config > default."""
    # Check environment variable first (only if not empty)
    env_value = os.getenv(key.upper())
    if env_value:  # Treat empty string as missing
        return env_value

    # Check secrets file
    if key.lower() in _config_secrets:
        return _as_str(_config_secrets[key.lower()])

    # Check dev config file
    if key.lower() in _config_dev:
        return _as_str(_config_dev[key.lower()])

    return default


def _as_str(value) -> str:
    # JSON lists (e.g. key pools) are flattened to the comma form used by env vars
    if isinstance(value, list):
        return ",".join(str(v) for v in value)
    return str(value)


def _split_keys(raw: str) -> list[str]:
    return [k.strip() for k in raw.split(",") if k.strip()]


def _setting(key: str, default: str = ""):
    return field(default_factory=lambda: _get_config(key, default))


def _int_setting(key: str, default: int):
    return field(default_factory=lambda: int(_get_config(key, str(default))))


def _float_setting(key: str, default: float):
    return field(default_factory=lambda: float(_get_config(key, str(default))))


@dataclass
class Config:
    """Configuration loaded from env vars or JSON files."""

    # AWS
    aws_region: str = _setting("AWS_REGION", "us-east-1")

    # Credential source: ENV (comma separated keys) or SECRETS_MANAGER
    credential_backend: str = _setting("CREDENTIAL_BACKEND", "ENV")
    credentials_secret_name: str = _setting("CREDENTIALS_SECRET_NAME", "webtoon-api-keys")
    vision_api_keys: list[str] = field(
        default_factory=lambda: _split_keys(_get_config("VISION_API_KEYS", ""))
    )
    drive_api_keys: list[str] = field(
        default_factory=lambda: _split_keys(_get_config("DRIVE_API_KEYS", ""))
    )

    # Image store
    image_bucket: str = _setting("IMAGE_BUCKET", "webtoon-chapter-images")

    # Google Gemini config
    ocr_model: str = _setting("OCR_MODEL", "gemini-2.5-pro")
    review_model: str = _setting("REVIEW_MODEL", "gemini-2.0-flash-lite-001")
    temperature: float = _float_setting("TEMPERATURE", 0.2)
    max_tokens: int = _int_setting("MAX_TOKENS", 8192)

    # Batch orchestration
    batch_concurrency: int = _int_setting("BATCH_CONCURRENCY", 3)
    item_timeout_ms: int = _int_setting("ITEM_TIMEOUT_MS", 30000)
    max_retries: int = _int_setting("MAX_RETRIES", 2)
    retry_delay_ms: int = _int_setting("RETRY_DELAY_MS", 1000)
    max_batch_size: int = _int_setting("MAX_BATCH_SIZE", 20)
    chapter_concurrency: int = _int_setting("CHAPTER_CONCURRENCY", 1)
    chapter_timeout_ms: int = _int_setting("CHAPTER_TIMEOUT_MS", 600000)

    def credentials_for(self, scope: str) -> list[str]:
        """Keys configured directly for a scope (ENV backend)."""
        return {
            "vision": self.vision_api_keys,
            "drive": self.drive_api_keys,
        }.get(scope, [])

    def validate(self) -> None:
        """Validate required configuration."""
        if self.credential_backend not in ("ENV", "SECRETS_MANAGER"):
            raise ValueError(
                f"CREDENTIAL_BACKEND must be ENV or SECRETS_MANAGER, got {self.credential_backend}"
            )

        if self.credential_backend == "SECRETS_MANAGER" and not self.credentials_secret_name:
            raise ValueError(
                "CREDENTIALS_SECRET_NAME is required for SECRETS_MANAGER backend"
            )

        if self.batch_concurrency <= 0:
            raise ValueError("BATCH_CONCURRENCY must be positive")

        if self.max_batch_size <= 0:
            raise ValueError("MAX_BATCH_SIZE must be positive")


config = Config()
