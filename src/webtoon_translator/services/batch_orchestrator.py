"""Bounded-concurrency batch runner with per-item timeout and retry."""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable

from webtoon_translator.errors import (
    ConfigurationError,
    InvalidBatchError,
    ItemTimeoutError,
    ProviderPermanentError,
)
from webtoon_translator.models.schemas import BatchResult, BatchSettings, ItemResult

logger = logging.getLogger(__name__)


@dataclass
class BatchConfig:
    """Concurrency, timeout and retry policy for one batch run."""

    concurrency: int = 3
    timeout_ms: int = 30000
    max_retries: int = 2
    retry_delay_ms: int = 1000
    # 1.0 keeps a constant delay between attempts
    backoff_factor: float = 1.0

    @classmethod
    def from_config(cls, config) -> "BatchConfig":
        return cls(
            concurrency=config.batch_concurrency,
            timeout_ms=config.item_timeout_ms,
            max_retries=config.max_retries,
            retry_delay_ms=config.retry_delay_ms,
        )

    def with_overrides(self, settings: BatchSettings | None) -> "BatchConfig":
        if settings is None:
            return self
        overrides = {
            k: v for k, v in settings.model_dump().items() if v is not None
        }
        return replace(self, **overrides)

    def retry_delay_seconds(self, retry: int) -> float:
        """Delay before the given retry (1-based)."""
        return self.retry_delay_ms * (self.backoff_factor ** (retry - 1)) / 1000

    def validate(self) -> None:
        if self.concurrency <= 0:
            raise InvalidBatchError(f"concurrency must be positive, got {self.concurrency}")
        if self.timeout_ms <= 0:
            raise InvalidBatchError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.max_retries < 0:
            raise InvalidBatchError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.retry_delay_ms < 0:
            raise InvalidBatchError(f"retry_delay_ms must be >= 0, got {self.retry_delay_ms}")
        if self.backoff_factor < 1.0:
            raise InvalidBatchError(f"backoff_factor must be >= 1.0, got {self.backoff_factor}")


@dataclass
class WorkItem:
    """One unit of batch work. Mutated only by the orchestrator."""

    sequence_number: int
    payload: Any
    label: str | None = None
    attempts: int = 0
    result: ItemResult | None = None


ProcessFn = Callable[[WorkItem], Awaitable[Any]]


def _describe(error: BaseException) -> str:
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


def _discard_outcome(task: asyncio.Task) -> None:
    # Abandoned attempt finished after its timeout; result is dropped
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Abandoned attempt finished with: %s", task.exception())


class BatchOrchestrator:
    """
    Runs independent work items with bounded concurrency.

    Each item holds one semaphore slot for all of its attempts. An attempt
    that exceeds the timeout is abandoned: its task is cancelled where the
    work is cancellable, but work already handed to a thread (boto3, Pillow)
    runs to completion and its outcome is discarded.

    Failure policy:
        ProviderPermanentError: item fails immediately, no retry.
        ConfigurationError: whole batch aborts, error re-raised to caller.
        anything else (timeouts, 429, 5xx, unknown): retried up to max_retries.
    """

    def __init__(self, default_config: BatchConfig | None = None):
        self._default_config = default_config or BatchConfig()

    @property
    def default_config(self) -> BatchConfig:
        return self._default_config

    async def run(
        self,
        items: list[WorkItem],
        process_fn: ProcessFn,
        config: BatchConfig | None = None,
        allow_empty: bool = False,
    ) -> BatchResult:
        """
        Process all items and collect per-item outcomes.

        Args:
            items: Work items with unique sequence numbers.
            process_fn: Coroutine function called once per attempt.
            config: Batch policy; the orchestrator default when None.
            allow_empty: Return an empty result instead of raising for no items.

        Returns:
            BatchResult with results ordered by sequence number.

        Raises:
            InvalidBatchError: Invalid config or item list.
            ConfigurationError: A credential/configuration failure in any item.
        """
        config = config or self._default_config
        config.validate()
        self._validate_items(items, allow_empty)

        if not items:
            return BatchResult()

        logger.info(
            "Starting batch of %d items (concurrency=%d, timeout=%dms, max_retries=%d)",
            len(items),
            config.concurrency,
            config.timeout_ms,
            config.max_retries,
        )

        semaphore = asyncio.Semaphore(config.concurrency)
        tasks = [
            asyncio.create_task(self._run_item(item, process_fn, config, semaphore))
            for item in items
        ]

        try:
            await asyncio.gather(*tasks)
        except ConfigurationError as e:
            logger.error("Aborting batch on configuration error: %s", e)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        results = sorted(
            (item.result for item in items), key=lambda r: r.sequence_number
        )
        success_count = sum(1 for r in results if r.success)
        failure_count = len(results) - success_count

        logger.info(
            "Batch completed: %d succeeded, %d failed", success_count, failure_count
        )
        return BatchResult(
            results=results,
            success_count=success_count,
            failure_count=failure_count,
        )

    def _validate_items(self, items: list[WorkItem], allow_empty: bool) -> None:
        if not items and not allow_empty:
            raise InvalidBatchError("at least one work item is required")

        seen: set[int] = set()
        for item in items:
            if item.sequence_number in seen:
                raise InvalidBatchError(
                    f"duplicate sequence number: {item.sequence_number}"
                )
            seen.add(item.sequence_number)

    async def _run_item(
        self,
        item: WorkItem,
        process_fn: ProcessFn,
        config: BatchConfig,
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            last_error: BaseException | None = None

            while True:
                item.attempts += 1
                try:
                    payload = await self._attempt(item, process_fn, config.timeout_ms)
                except ConfigurationError:
                    raise
                except ProviderPermanentError as e:
                    logger.error(
                        "Item %s (%s) failed permanently: %s",
                        item.sequence_number,
                        item.label,
                        e,
                    )
                    last_error = e
                    break
                except Exception as e:
                    last_error = e
                    if item.attempts > config.max_retries:
                        logger.error(
                            "Item %s (%s) failed after %d attempts: %s",
                            item.sequence_number,
                            item.label,
                            item.attempts,
                            e,
                        )
                        break
                    delay = config.retry_delay_seconds(item.attempts)
                    logger.warning(
                        "Item %s (%s) attempt %d failed: %s; retrying in %.2fs",
                        item.sequence_number,
                        item.label,
                        item.attempts,
                        e,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue

                item.result = ItemResult(
                    sequence_number=item.sequence_number,
                    success=True,
                    payload=payload,
                    attempts=item.attempts,
                    label=item.label,
                )
                return

            item.result = ItemResult(
                sequence_number=item.sequence_number,
                success=False,
                error=_describe(last_error),
                attempts=item.attempts,
                label=item.label,
            )

    async def _attempt(
        self, item: WorkItem, process_fn: ProcessFn, timeout_ms: int
    ) -> Any:
        task = asyncio.ensure_future(process_fn(item))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(_discard_outcome)
        raise ItemTimeoutError(timeout_ms)
