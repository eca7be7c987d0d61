"""Round-robin / least-used rotation of provider API keys per scope."""

import asyncio
import logging
from dataclasses import dataclass, field

from webtoon_translator.errors import ConfigurationError, NoCredentialsError
from webtoon_translator.models.credential_source import CredentialSource
from webtoon_translator.models.schemas import UsageStats

logger = logging.getLogger(__name__)


@dataclass
class CredentialPool:
    """Keys for one provider scope. List order is rotation order."""

    credentials: list[str] = field(default_factory=list)
    cursor: int = 0
    usage: list[int] = field(default_factory=list)
    initialized: bool = False

    def load(self, credentials: list[str]) -> None:
        self.credentials = list(credentials)
        self.usage = [0] * len(self.credentials)
        self.cursor = 0
        self.initialized = True

    def clear(self) -> None:
        self.credentials = []
        self.usage = []
        self.cursor = 0
        self.initialized = False


class CredentialPoolManager:
    """
    Hands out credentials from per-scope pools.

    Pools are loaded lazily from a CredentialSource the first time a scope is
    used. Selection (get_next / get_by_index / get_least_used after the pool
    is loaded) never awaits between reading and updating cursor or counters,
    so concurrent tasks on one event loop cannot pick the same slot twice or
    lose a usage increment.
    """

    def __init__(self, source: CredentialSource):
        self._source = source
        self._pools: dict[str, CredentialPool] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    def _pool(self, scope: str) -> CredentialPool:
        return self._pools.setdefault(scope, CredentialPool())

    def is_initialized(self, scope: str) -> bool:
        return self._pool(scope).initialized

    async def initialize(self, scope: str) -> None:
        """
        Load the credential list for a scope.

        Args:
            scope: Provider scope name.

        Raises:
            ConfigurationError: If the source is unreachable. The pool is left
                empty and uninitialized so the next request retries.
        """
        pool = self._pool(scope)
        logger.info("Initializing API keys for scope '%s'", scope)
        try:
            credentials = await asyncio.to_thread(self._source.load_credentials, scope)
        except Exception as e:
            pool.clear()
            logger.error("Failed to load API keys for scope '%s': %s", scope, e)
            raise ConfigurationError(
                f"Failed to load API keys for scope '{scope}': {e}"
            ) from e

        pool.load(credentials or [])
        if pool.credentials:
            logger.info(
                "Loaded %d API keys for scope '%s'", len(pool.credentials), scope
            )
        else:
            logger.warning("No API keys found for scope '%s'", scope)

    def _init_lock(self, scope: str) -> asyncio.Lock:
        # Locks bind to the loop they first wait on; each asyncio.run gets fresh ones
        loop = asyncio.get_running_loop()
        if loop is not self._lock_loop:
            self._locks = {}
            self._lock_loop = loop
        return self._locks.setdefault(scope, asyncio.Lock())

    async def _ensure_initialized(self, scope: str) -> CredentialPool:
        pool = self._pool(scope)
        if not pool.initialized:
            async with self._init_lock(scope):
                # Another task may have finished loading while we waited
                if not pool.initialized:
                    await self.initialize(scope)
        if not pool.credentials:
            raise NoCredentialsError(scope)
        return pool

    async def get_next(self, scope: str) -> str:
        """Return the key at the cursor and advance the cursor (round-robin)."""
        pool = await self._ensure_initialized(scope)
        index = pool.cursor
        pool.usage[index] += 1
        pool.cursor = (index + 1) % len(pool.credentials)
        logger.debug(
            "Using %s key %d/%d (usage: %d)",
            scope,
            index + 1,
            len(pool.credentials),
            pool.usage[index],
        )
        return pool.credentials[index]

    async def get_by_index(self, scope: str, index: int) -> str:
        """Return the key at index mod N without moving the shared cursor."""
        pool = await self._ensure_initialized(scope)
        key_index = index % len(pool.credentials)
        pool.usage[key_index] += 1
        logger.debug(
            "Using %s key %d/%d (index: %d, usage: %d)",
            scope,
            key_index + 1,
            len(pool.credentials),
            index,
            pool.usage[key_index],
        )
        return pool.credentials[key_index]

    async def get_least_used(self, scope: str) -> str:
        """Return the key with the lowest usage count (ties: lowest index)."""
        pool = await self._ensure_initialized(scope)
        key_index = min(range(len(pool.usage)), key=pool.usage.__getitem__)
        pool.usage[key_index] += 1
        logger.debug(
            "Using least used %s key %d/%d (usage now: %d)",
            scope,
            key_index + 1,
            len(pool.credentials),
            pool.usage[key_index],
        )
        return pool.credentials[key_index]

    async def refresh(self, scope: str) -> None:
        """Drop the loaded keys for a scope and load them again."""
        self._pool(scope).initialized = False
        await self.initialize(scope)

    def key_count(self, scope: str) -> int:
        return len(self._pool(scope).credentials)

    def get_usage_stats(self, scope: str) -> UsageStats:
        pool = self._pool(scope)
        return UsageStats(
            count=len(pool.credentials),
            per_credential_usage=list(pool.usage),
            total_usage=sum(pool.usage),
        )

    def reset_usage_counters(self, scope: str | None = None) -> None:
        """Zero usage counters for one scope, or for every scope."""
        scopes = [scope] if scope else list(self._pools)
        for name in scopes:
            pool = self._pool(name)
            pool.usage = [0] * len(pool.credentials)
        logger.info("Usage counters reset for: %s", ", ".join(scopes) or "none")
