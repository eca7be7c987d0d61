"""OCR of chapter page images through the batch orchestrator."""

import asyncio
import logging

from webtoon_translator.errors import InvalidBatchError
from webtoon_translator.infrastructure.s3_client import S3ImageStore
from webtoon_translator.models.credential_source import VISION_SCOPE
from webtoon_translator.models.provider import ProviderClient, ProviderClientFactory
from webtoon_translator.models.schemas import (
    BatchSettings,
    BulkExtraction,
    ChapterExtraction,
    ChapterRequest,
    ImageRef,
    PageResult,
)
from webtoon_translator.services.batch_orchestrator import (
    BatchConfig,
    BatchOrchestrator,
    WorkItem,
)
from webtoon_translator.services.credential_pool import CredentialPoolManager
from webtoon_translator.services.image_preparer import ImagePreparer
from webtoon_translator.services.prompt_builder import NO_TEXT_MARKER, PromptBuilder

logger = logging.getLogger(__name__)


def combine_pages(pages: list[PageResult]) -> str:
    """Join successful page texts under "=== Page N (file) ===" headers."""
    blocks = [
        f"=== Page {page.page_number} ({page.file_name}) ===\n\n{page.extracted_text}"
        for page in pages
        if page.success and page.extracted_text and page.extracted_text != NO_TEXT_MARKER
    ]
    return "\n\n".join(blocks)


class TextExtractionService:
    """Extracts tagged text from chapter images, one provider call per page."""

    def __init__(
        self,
        pool_manager: CredentialPoolManager,
        client_factory: ProviderClientFactory,
        image_store: S3ImageStore,
        image_preparer: ImagePreparer,
        prompt_builder: PromptBuilder,
        orchestrator: BatchOrchestrator,
        max_batch_size: int = 20,
        chapter_config: BatchConfig | None = None,
    ):
        self._pool_manager = pool_manager
        self._client_factory = client_factory
        self._image_store = image_store
        self._image_preparer = image_preparer
        self._prompt_builder = prompt_builder
        self._orchestrator = orchestrator
        self._max_batch_size = max_batch_size
        # Chapters are not retried as a whole; their pages already are
        self._chapter_config = chapter_config or BatchConfig(
            concurrency=1, timeout_ms=600000, max_retries=0, retry_delay_ms=0
        )

    async def _resolve_images(self, request: ChapterRequest) -> list[ImageRef]:
        if request.images:
            return list(request.images)
        if request.prefix:
            return await asyncio.to_thread(self._image_store.list_images, request.prefix)
        return []

    async def _client(self, api_key_index: int | None) -> ProviderClient:
        if isinstance(api_key_index, int):
            api_key = await self._pool_manager.get_by_index(VISION_SCOPE, api_key_index)
        else:
            api_key = await self._pool_manager.get_next(VISION_SCOPE)
        return self._client_factory.create(api_key)

    async def extract_chapter(
        self,
        request: ChapterRequest,
        source_language: str = "Korean",
        api_key_index: int | None = None,
        settings: BatchSettings | None = None,
    ) -> ChapterExtraction:
        """
        Extract the text of every page of one chapter.

        Pages are numbered from 1 in filename order ("01.jpg" before
        "10.jpg"). One credential serves the whole chapter.

        Args:
            request: Chapter id and its images (or an image store prefix).
            source_language: Language of the source text.
            api_key_index: Pin a specific vision key instead of rotating.
            settings: Per-request batch overrides.

        Returns:
            ChapterExtraction with per-page results and the combined text.

        Raises:
            InvalidBatchError: No images, or more than max_batch_size.
            ConfigurationError: No usable vision keys.
        """
        images = await self._resolve_images(request)
        if not images:
            raise InvalidBatchError("Images array is required")
        if len(images) > self._max_batch_size:
            raise InvalidBatchError(f"Maximum batch size is {self._max_batch_size} images")

        images.sort(key=lambda image: image.sort_number)
        client = await self._client(api_key_index)
        prompt = self._prompt_builder.ocr(source_language)

        logger.info(
            "Extracting text for chapter %s: %d images", request.chapter_id, len(images)
        )

        async def process_page(item: WorkItem) -> str:
            image: ImageRef = item.payload
            data = await asyncio.to_thread(self._image_store.download, image)
            payload = await asyncio.to_thread(
                self._image_preparer.prepare, data, image.name, image.mime_type
            )
            return await client.send(payload, prompt)

        items = [
            WorkItem(sequence_number=page_number, payload=image, label=image.name)
            for page_number, image in enumerate(images, start=1)
        ]
        config = self._orchestrator.default_config.with_overrides(settings)
        batch = await self._orchestrator.run(items, process_page, config)

        pages = [
            PageResult(
                page_number=result.sequence_number,
                file_name=result.label or "",
                extracted_text=(result.payload or "").strip(),
                raw_response=result.payload or "",
                success=result.success,
                error=result.error,
            )
            for result in batch.results
        ]

        return ChapterExtraction(
            chapter_id=request.chapter_id,
            chapter_number=request.chapter_number,
            success=True,
            extracted_text=combine_pages(pages),
            pages=pages,
            total_images=len(images),
            success_count=batch.success_count,
            failure_count=batch.failure_count,
        )

    async def extract_chapters(
        self,
        requests: list[ChapterRequest],
        source_language: str = "Korean",
        settings: BatchSettings | None = None,
    ) -> BulkExtraction:
        """Extract several chapters. A failed chapter does not stop the others."""
        if not requests:
            raise InvalidBatchError("Chapters array is required")

        async def process_chapter(item: WorkItem) -> ChapterExtraction:
            return await self.extract_chapter(
                item.payload, source_language=source_language, settings=settings
            )

        items = [
            WorkItem(sequence_number=index, payload=request, label=request.chapter_id)
            for index, request in enumerate(requests)
        ]
        batch = await self._orchestrator.run(items, process_chapter, self._chapter_config)

        results = []
        for result, request in zip(batch.results, requests):
            if result.success:
                results.append(result.payload)
            else:
                logger.error(
                    "Failed to extract chapter %s: %s", request.chapter_id, result.error
                )
                results.append(
                    ChapterExtraction(
                        chapter_id=request.chapter_id,
                        chapter_number=request.chapter_number,
                        success=False,
                        error=result.error,
                    )
                )

        return BulkExtraction(
            total_chapters=len(requests),
            success_count=batch.success_count,
            failure_count=batch.failure_count,
            results=results,
        )
