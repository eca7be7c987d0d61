"""Handlers for chapter text extraction requests."""

import logging

from webtoon_translator.models.schemas import BatchSettings, ChapterRequest
from webtoon_translator.services.text_extractor import TextExtractionService

logger = logging.getLogger(__name__)


def _settings(event: dict) -> BatchSettings | None:
    settings = BatchSettings.model_validate(event)
    if settings.model_dump(exclude_none=True):
        return settings
    return None


async def extract_chapter(service: TextExtractionService, event: dict) -> dict:
    """
    Extract text from one chapter's images.

    Event fields: chapterId, chapterNumber, images or prefix, sourceLanguage,
    apiKeyIndex, and optional batch overrides (concurrency, timeoutMs,
    maxRetries, retryDelayMs).
    """
    request = ChapterRequest.model_validate(event)
    result = await service.extract_chapter(
        request,
        source_language=event.get("sourceLanguage", "Korean"),
        api_key_index=event.get("apiKeyIndex"),
        settings=_settings(event),
    )
    logger.info(
        "Chapter %s extracted: %d/%d pages succeeded",
        result.chapter_id,
        result.success_count,
        result.total_images,
    )
    return result.model_dump(mode="json", by_alias=True)


async def extract_chapters(service: TextExtractionService, event: dict) -> dict:
    """Extract text for every chapter listed under "chapters"."""
    requests = [ChapterRequest.model_validate(c) for c in event.get("chapters") or []]
    result = await service.extract_chapters(
        requests,
        source_language=event.get("sourceLanguage", "Korean"),
        settings=_settings(event),
    )
    logger.info(
        "Bulk extraction: %d chapters, %d succeeded, %d failed",
        result.total_chapters,
        result.success_count,
        result.failure_count,
    )
    return result.model_dump(mode="json", by_alias=True)
