"""Tests for services layer."""

import asyncio
import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from webtoon_translator.errors import (
    ImagePreparationError,
    InvalidBatchError,
    NoCredentialsError,
    ProviderError,
    ProviderPermanentError,
)
from webtoon_translator.infrastructure.s3_client import S3ImageStore
from webtoon_translator.infrastructure.static_credential_source import StaticCredentialSource
from webtoon_translator.models.provider import (
    ProviderClient,
    ProviderClientFactory,
    ProviderPayload,
)
from webtoon_translator.models.report import EntityType, GlossarySuggestion, Role
from webtoon_translator.models.schemas import (
    BatchSettings,
    ChapterRequest,
    FinalizeRequest,
    ImageRef,
    PageResult,
    ReviewRequest,
)
from webtoon_translator.services.batch_orchestrator import BatchConfig, BatchOrchestrator
from webtoon_translator.services.credential_pool import CredentialPoolManager
from webtoon_translator.services.image_preparer import ImagePreparer
from webtoon_translator.services.prompt_builder import NO_TEXT_MARKER, PromptBuilder
from webtoon_translator.services.quality_service import QualityService
from webtoon_translator.services.text_extractor import TextExtractionService, combine_pages


def _image_bytes(width: int, height: int, fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(255, 255, 255)).save(buffer, format=fmt)
    return buffer.getvalue()


def _fast_orchestrator() -> BatchOrchestrator:
    return BatchOrchestrator(
        BatchConfig(concurrency=3, timeout_ms=1000, max_retries=1, retry_delay_ms=0)
    )


class TestImagePreparer:
    """Tests for ImagePreparer."""

    def test_small_image_passes_through(self):
        """Test an image within limits is sent unchanged."""
        data = _image_bytes(100, 200)

        payload = ImagePreparer().prepare(data, "01.png", "image/png")

        assert payload.image_data == data
        assert payload.mime_type == "image/png"

    def test_oversized_image_is_downscaled_to_jpeg(self):
        """Test an image wider than the limit is resized inside the box."""
        data = _image_bytes(200, 50)

        payload = ImagePreparer(max_dimension=100).prepare(data, "wide.png", "image/png")

        assert payload.mime_type == "image/jpeg"
        resized = Image.open(io.BytesIO(payload.image_data))
        assert resized.format == "JPEG"
        assert resized.size == (100, 25)

    def test_large_file_is_reencoded(self):
        """Test a file above the byte limit is re-encoded even if small in pixels."""
        data = _image_bytes(50, 50)

        payload = ImagePreparer(max_file_size=10).prepare(data, "big.png", "image/png")

        assert payload.mime_type == "image/jpeg"
        assert Image.open(io.BytesIO(payload.image_data)).size == (50, 50)

    def test_too_small_image_rejected(self):
        """Test images under the minimum dimension are rejected permanently."""
        data = _image_bytes(5, 100)

        with pytest.raises(ImagePreparationError) as exc_info:
            ImagePreparer().prepare(data, "tiny.png")

        assert isinstance(exc_info.value, ProviderPermanentError)

    def test_unreadable_image_rejected(self):
        """Test bytes that are not an image are rejected."""
        with pytest.raises(ImagePreparationError):
            ImagePreparer().prepare(b"not an image", "broken.jpg")


class TestPromptBuilder:
    """Tests for PromptBuilder."""

    def test_ocr_prompt_mentions_marker_and_language(self):
        """Test the OCR prompt carries the no-text marker and language."""
        prompt = PromptBuilder().ocr("Japanese")

        assert NO_TEXT_MARKER in prompt
        assert "Japanese" in prompt
        assert "right-to-left" in prompt

    def test_review_prompt_lists_sections_and_glossary(self):
        """Test the review prompt includes the glossary and every section heading."""
        prompt = PromptBuilder().review(
            original_text="원문",
            glossary={"민준": "Minjun"},
            series_notes="Light tone",
            chapter_id="ch-7",
        )

        assert "원문" in prompt
        assert '"민준": "Minjun"' in prompt
        assert "Series Notes: Light tone" in prompt
        assert "Chapter Info: Chapter ch-7" in prompt
        for heading in (
            "1. **IMPROVED TEXT:**",
            "5. **GLOSSARY ENTRIES:**",
            "7. **CHAPTER SUMMARY:**",
        ):
            assert heading in prompt
        assert "Series Description" not in prompt

    def test_finalize_prompt_lists_approved_items(self):
        """Test approved suggestions and glossary terms are rendered."""
        term = GlossarySuggestion(
            source_term="민준",
            translated_term="Minjun",
            entity_type=EntityType.PERSON,
            role=Role.PROTAGONIST,
        )

        prompt = PromptBuilder().finalize(
            original_text="원문",
            approved_suggestions=["Use contractions"],
            approved_glossary_terms=[term],
        )

        assert "- Use contractions" in prompt
        assert '"민준" → "Minjun" (Person) [Protagonist]' in prompt
        assert "1. **FINAL TEXT:**" in prompt
        assert "4. **READABILITY SCORE:**" in prompt

    def test_finalize_prompt_without_approvals(self):
        """Test empty approvals leave out their blocks."""
        prompt = PromptBuilder().finalize(original_text="원문")

        assert "APPROVED GLOSSARY TERMS" not in prompt
        assert "APPROVED SUGGESTIONS" not in prompt


class TestCombinePages:
    """Tests for combine_pages."""

    def test_skips_failed_and_empty_pages(self):
        """Test only successful pages with text are joined, in order."""
        pages = [
            PageResult(page_number=1, file_name="01.jpg", extracted_text='"": Hi', success=True),
            PageResult(page_number=2, file_name="02.jpg", extracted_text=NO_TEXT_MARKER, success=True),
            PageResult(page_number=3, file_name="03.jpg", success=False, error="boom"),
            PageResult(page_number=4, file_name="04.jpg", extracted_text="(): Hmm", success=True),
        ]

        assert combine_pages(pages) == (
            '=== Page 1 (01.jpg) ===\n\n"": Hi\n\n=== Page 4 (04.jpg) ===\n\n(): Hmm'
        )


class TestTextExtractionService:
    """Tests for TextExtractionService."""

    def _service(self, client, keys=None, images=None, max_batch_size=20):
        pool_manager = CredentialPoolManager(
            StaticCredentialSource({"vision": keys if keys is not None else ["k1", "k2"]})
        )
        factory = MagicMock(spec=ProviderClientFactory)
        factory.create.return_value = client
        image_store = MagicMock(spec=S3ImageStore)
        image_store.download.side_effect = lambda image: f"bytes:{image.name}".encode()
        image_store.list_images.return_value = images or []
        preparer = MagicMock(spec=ImagePreparer)
        preparer.prepare.side_effect = lambda data, name, mime: ProviderPayload.from_image(data, mime)
        service = TextExtractionService(
            pool_manager=pool_manager,
            client_factory=factory,
            image_store=image_store,
            image_preparer=preparer,
            prompt_builder=PromptBuilder(),
            orchestrator=_fast_orchestrator(),
            max_batch_size=max_batch_size,
        )
        return service, factory, image_store, pool_manager

    def _client(self, replies: dict[bytes, str]):
        client = MagicMock(spec=ProviderClient)

        async def send(payload, prompt):
            reply = replies[payload.image_data]
            if isinstance(reply, Exception):
                raise reply
            return reply

        client.send = AsyncMock(side_effect=send)
        return client

    def test_extract_chapter_orders_and_combines_pages(self):
        """Test pages are numbered in filename order and combined."""
        client = self._client(
            {
                b"bytes:1.jpg": ' "": First \n',
                b"bytes:2.jpg": NO_TEXT_MARKER,
                b"bytes:10.jpg": "(): Last",
            }
        )
        service, factory, _, _ = self._service(client)
        request = ChapterRequest(
            chapter_id="ch-1",
            chapter_number="1",
            images=[
                ImageRef(name="10.jpg", key="c/10.jpg"),
                ImageRef(name="1.jpg", key="c/1.jpg"),
                ImageRef(name="2.jpg", key="c/2.jpg"),
            ],
        )

        result = asyncio.run(service.extract_chapter(request))

        assert [p.file_name for p in result.pages] == ["1.jpg", "2.jpg", "10.jpg"]
        assert [p.page_number for p in result.pages] == [1, 2, 3]
        assert result.pages[0].extracted_text == '"": First'
        assert result.extracted_text == (
            '=== Page 1 (1.jpg) ===\n\n"": First\n\n=== Page 3 (10.jpg) ===\n\n(): Last'
        )
        assert result.success_count == 3
        assert result.total_images == 3
        factory.create.assert_called_once_with("k1")

    def test_extract_chapter_records_failed_pages(self):
        """Test a permanently failing page is reported without failing the chapter."""
        client = self._client(
            {
                b"bytes:1.jpg": '"": Ok',
                b"bytes:2.jpg": ProviderPermanentError("payload too large", status_code=413),
            }
        )
        service, _, _, _ = self._service(client)
        request = ChapterRequest(
            chapter_id="ch-1",
            images=[ImageRef(name="1.jpg", key="1.jpg"), ImageRef(name="2.jpg", key="2.jpg")],
        )

        result = asyncio.run(service.extract_chapter(request))

        assert result.success is True
        assert result.success_count == 1
        assert result.failure_count == 1
        failed = result.pages[1]
        assert failed.success is False
        assert "payload too large" in failed.error
        assert failed.file_name == "2.jpg"

    def test_extract_chapter_with_key_index(self):
        """Test a pinned key index selects that key."""
        client = self._client({b"bytes:1.jpg": "text"})
        service, factory, _, pool_manager = self._service(client, keys=["k1", "k2", "k3"])
        request = ChapterRequest(images=[ImageRef(name="1.jpg", key="1.jpg")])

        asyncio.run(service.extract_chapter(request, api_key_index=5))

        factory.create.assert_called_once_with("k3")
        assert pool_manager.get_usage_stats("vision").per_credential_usage == [0, 0, 1]

    def test_extract_chapter_lists_images_from_prefix(self):
        """Test a prefix request lists the chapter images from the store."""
        client = self._client({b"bytes:1.jpg": "text"})
        service, _, image_store, _ = self._service(
            client, images=[ImageRef(name="1.jpg", key="ch/1.jpg")]
        )

        result = asyncio.run(service.extract_chapter(ChapterRequest(prefix="ch/")))

        image_store.list_images.assert_called_once_with("ch/")
        assert result.total_images == 1

    def test_extract_chapter_applies_settings(self):
        """Test per-request overrides reach the orchestrator."""
        client = self._client({b"bytes:1.jpg": RuntimeError("flaky")})
        service, _, _, _ = self._service(client)
        request = ChapterRequest(images=[ImageRef(name="1.jpg", key="1.jpg")])

        result = asyncio.run(
            service.extract_chapter(request, settings=BatchSettings(max_retries=3))
        )

        assert client.send.await_count == 4
        assert result.failure_count == 1

    def test_extract_chapter_rejects_empty_and_oversized(self):
        """Test empty and too-large image lists are invalid requests."""
        client = self._client({})
        service, _, _, _ = self._service(client, max_batch_size=1)
        too_many = ChapterRequest(
            images=[ImageRef(name="1.jpg", key="1.jpg"), ImageRef(name="2.jpg", key="2.jpg")]
        )

        with pytest.raises(InvalidBatchError):
            asyncio.run(service.extract_chapter(ChapterRequest()))
        with pytest.raises(InvalidBatchError, match="Maximum batch size"):
            asyncio.run(service.extract_chapter(too_many))

    def test_extract_chapter_without_keys_raises(self):
        """Test missing vision keys raise a configuration error."""
        service, _, _, _ = self._service(self._client({}), keys=[])
        request = ChapterRequest(images=[ImageRef(name="1.jpg", key="1.jpg")])

        with pytest.raises(NoCredentialsError):
            asyncio.run(service.extract_chapter(request))

    def test_extract_chapters_isolates_failures(self):
        """Test one invalid chapter fails alone and results keep request order."""
        client = self._client({b"bytes:1.jpg": "text"})
        service, _, _, _ = self._service(client)
        requests = [
            ChapterRequest(chapter_id="a", images=[ImageRef(name="1.jpg", key="a/1.jpg")]),
            ChapterRequest(chapter_id="b"),
            ChapterRequest(chapter_id="c", images=[ImageRef(name="1.jpg", key="c/1.jpg")]),
        ]

        result = asyncio.run(service.extract_chapters(requests))

        assert result.total_chapters == 3
        assert result.success_count == 2
        assert result.failure_count == 1
        assert [r.chapter_id for r in result.results] == ["a", "b", "c"]
        assert result.results[1].success is False
        assert "Images array is required" in result.results[1].error

    def test_extract_chapters_requires_chapters(self):
        """Test an empty chapter list is invalid."""
        service, _, _, _ = self._service(self._client({}))

        with pytest.raises(InvalidBatchError):
            asyncio.run(service.extract_chapters([]))


REVIEW_REPLY = """1. **IMPROVED TEXT:**
=== Page 1 ===

"": Hello.
(): Thinking.
[]: Narration.

2. **ISSUES:**
- None major

6. **CHAPTER MEMORY:**
They met.
"""

FINALIZE_REPLY = """1. **FINAL TEXT:**
=== Page 1 ===

"": Final hello.

2. **QUALITY REPORT:**
{"issues": [], "chapterMemory": "Memory", "chapterSummary": "Summary"}

4. **READABILITY SCORE:**
91
"""


class TestQualityService:
    """Tests for QualityService."""

    def _service(self, replies):
        client = MagicMock(spec=ProviderClient)
        client.send = AsyncMock(side_effect=replies)
        factory = MagicMock(spec=ProviderClientFactory)
        factory.create.return_value = client
        pool_manager = CredentialPoolManager(StaticCredentialSource({"vision": ["k1", "k2"]}))
        service = QualityService(
            pool_manager=pool_manager,
            client_factory=factory,
            prompt_builder=PromptBuilder(),
            orchestrator=_fast_orchestrator(),
        )
        return service, client, factory

    def test_review_calls_model_and_scores_locally(self):
        """Test review extracts the reply and computes formatting and readability."""
        service, client, factory = self._service([REVIEW_REPLY])

        report = asyncio.run(service.review(ReviewRequest(original_text="원문")))

        assert report.final_text.startswith("=== Page 1 ===")
        assert report.quality_report.issues == ["None major"]
        assert report.quality_report.chapter_memory == "They met."
        assert report.formatting_report.tag_consistency is True
        assert report.formatting_report.page_headers_present is True
        assert 0 <= report.readability_score <= 100
        factory.create.assert_called_once_with("k1")
        payload, prompt = client.send.await_args.args
        assert payload == ProviderPayload()
        assert "원문" in prompt

    def test_review_with_raw_response_skips_model(self):
        """Test a supplied raw response is parsed without a model call."""
        service, client, _ = self._service([])

        report = asyncio.run(
            service.review(ReviewRequest(original_text="원문", raw_response=REVIEW_REPLY))
        )

        assert report.quality_report.chapter_memory == "They met."
        client.send.assert_not_awaited()

    def test_review_retries_empty_reply_then_fails(self):
        """Test an empty model reply is retried and then reported as an error."""
        service, client, _ = self._service(["", "   "])

        with pytest.raises(ProviderError, match="No translation text"):
            asyncio.run(service.review(ReviewRequest(original_text="원문")))

        assert client.send.await_count == 2

    def test_review_blank_raw_response_calls_model(self):
        """Test a blank raw response is ignored and the model is called."""
        service, client, _ = self._service([REVIEW_REPLY])

        report = asyncio.run(
            service.review(ReviewRequest(original_text="원문", raw_response="   "))
        )

        assert report.quality_report.chapter_memory == "They met."
        client.send.assert_awaited_once()

    def test_finalize_extracts_reports(self):
        """Test finalize parses the finalize layout."""
        service, client, _ = self._service([FINALIZE_REPLY])

        report = asyncio.run(
            service.finalize(
                FinalizeRequest(original_text="원문", approved_suggestions=["Be concise"])
            )
        )

        assert report.final_text == '=== Page 1 ===\n\n"": Final hello.'
        assert report.quality_report.chapter_summary == "Summary"
        assert report.readability_score == 91
        assert "Be concise" in client.send.await_args.args[1]

    def test_finalize_custom_translation_short_circuits(self):
        """Test a custom translation is returned without calling the model."""
        service, client, factory = self._service([])

        report = asyncio.run(
            service.finalize(
                FinalizeRequest(original_text="원문", custom_translation="  My own text  ")
            )
        )

        assert report.final_text == "My own text"
        assert report.readability_score == 100
        assert report.quality_report.chapter_memory == "Custom translation provided by user"
        assert report.formatting_report.missing_tags == []
        client.send.assert_not_awaited()
        factory.create.assert_not_called()
