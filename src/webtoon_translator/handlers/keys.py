"""Handlers for API key pool inspection and refresh."""

import logging

from webtoon_translator.errors import InvalidRequestError
from webtoon_translator.models.credential_source import DRIVE_SCOPE, VISION_SCOPE
from webtoon_translator.services.credential_pool import CredentialPoolManager

logger = logging.getLogger(__name__)

SCOPES = (VISION_SCOPE, DRIVE_SCOPE)


def _scopes(event: dict) -> list[str]:
    scope = event.get("scope")
    if scope is None:
        return list(SCOPES)
    if scope not in SCOPES:
        raise InvalidRequestError(f"Unknown scope '{scope}', expected one of: {', '.join(SCOPES)}")
    return [scope]


async def key_stats(pool_manager: CredentialPoolManager, event: dict) -> dict:
    """Key counts and usage per scope, loading pools not yet initialized."""
    stats = {}
    for scope in _scopes(event):
        if not pool_manager.is_initialized(scope):
            await pool_manager.initialize(scope)
        stats[scope] = pool_manager.get_usage_stats(scope).model_dump(by_alias=True)
    return {"success": True, "scopes": stats}


async def refresh_keys(pool_manager: CredentialPoolManager, event: dict) -> dict:
    """Reload key pools from the credential source."""
    counts = {}
    for scope in _scopes(event):
        await pool_manager.refresh(scope)
        counts[scope] = pool_manager.key_count(scope)
    logger.info("API keys refreshed: %s", counts)
    return {"success": True, "keyCounts": counts}
