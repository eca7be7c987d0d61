"""Review and finalize passes over an extracted chapter text."""

import logging

from webtoon_translator.errors import EmptyResponseError, ProviderError
from webtoon_translator.models.credential_source import VISION_SCOPE
from webtoon_translator.models.provider import ProviderClientFactory, ProviderPayload
from webtoon_translator.models.report import ExtractedReport, QualityReport
from webtoon_translator.models.schemas import FinalizeRequest, ReviewRequest
from webtoon_translator.services.batch_orchestrator import BatchOrchestrator, WorkItem
from webtoon_translator.services.credential_pool import CredentialPoolManager
from webtoon_translator.services.prompt_builder import PromptBuilder
from webtoon_translator.services.response_extractor import (
    FINALIZE_TEMPLATE,
    REVIEW_TEMPLATE,
    ResponseTemplate,
    extract,
)
from webtoon_translator.utils.text_metrics import (
    analyze_formatting,
    calculate_readability_score,
)

logger = logging.getLogger(__name__)

CUSTOM_TRANSLATION_MEMORY = "Custom translation provided by user"
CUSTOM_TRANSLATION_SUMMARY = "Custom translation - no AI-generated summary available"


class QualityService:
    """
    Runs the two text passes of the translation flow.

    review: translate and propose issues, suggestions, cultural notes,
        glossary entries and chapter memory.
    finalize: re-translate with only the user-approved suggestions and
        glossary terms, returning the machine-readable reports.

    The model call runs as a one-item batch so it gets the same timeout and
    retry policy as page extraction.
    """

    def __init__(
        self,
        pool_manager: CredentialPoolManager,
        client_factory: ProviderClientFactory,
        prompt_builder: PromptBuilder,
        orchestrator: BatchOrchestrator,
    ):
        self._pool_manager = pool_manager
        self._client_factory = client_factory
        self._prompt_builder = prompt_builder
        self._orchestrator = orchestrator

    async def _generate(self, prompt: str, template: ResponseTemplate, label: str) -> ExtractedReport:
        api_key = await self._pool_manager.get_least_used(VISION_SCOPE)
        client = self._client_factory.create(api_key)

        async def call_model(item: WorkItem) -> ExtractedReport:
            raw = await client.send(ProviderPayload(), item.payload)
            report = extract(raw, template)
            if not report.final_text.strip():
                logger.error("No translation text extracted. Response start: %s", raw[:1000])
                raise EmptyResponseError("No translation text extracted from model response")
            return report

        batch = await self._orchestrator.run(
            [WorkItem(sequence_number=1, payload=prompt, label=label)], call_model
        )
        result = batch.results[0]
        if not result.success:
            raise ProviderError(f"{label} failed: {result.error}")
        return result.payload

    async def review(self, request: ReviewRequest) -> ExtractedReport:
        """
        Translate and review a chapter text.

        A supplied raw_response is parsed directly without calling the model.
        The formatting report and readability score are computed locally from
        the improved text.

        Raises:
            ProviderError: The model call failed or yielded no text.
            ConfigurationError: No usable keys.
        """
        if request.raw_response and request.raw_response.strip():
            logger.info("Extracting review from provided raw response")
            report = extract(request.raw_response, REVIEW_TEMPLATE)
            if not report.final_text.strip():
                raise EmptyResponseError("Failed to generate or extract translation")
        else:
            logger.info("Calling model for review of %d chars", len(request.original_text))
            prompt = self._prompt_builder.review(
                original_text=request.original_text,
                glossary=request.glossary,
                source_language=request.source_language,
                series_notes=request.series_notes,
                series_description=request.series_description,
                chapter_id=request.chapter_id,
            )
            report = await self._generate(prompt, REVIEW_TEMPLATE, "Quality check")

        report.formatting_report = analyze_formatting(report.final_text)
        report.readability_score = calculate_readability_score(report.final_text)

        logger.info(
            "Review prepared: text=%d chars, issues=%d, suggestions=%d, glossary=%d, score=%d",
            len(report.final_text),
            len(report.quality_report.issues),
            len(report.quality_report.suggestions),
            len(report.quality_report.glossary_suggestions),
            report.readability_score,
        )
        return report

    async def finalize(self, request: FinalizeRequest) -> ExtractedReport:
        """Produce the final translation, or accept the user's own translation."""
        if request.custom_translation and request.custom_translation.strip():
            logger.info("Using custom translation provided by user")
            return ExtractedReport(
                final_text=request.custom_translation.strip(),
                quality_report=QualityReport(
                    chapter_memory=CUSTOM_TRANSLATION_MEMORY,
                    chapter_summary=CUSTOM_TRANSLATION_SUMMARY,
                ),
                readability_score=100,
            )

        logger.info(
            "Calling model for final translation (%d suggestions, %d glossary terms)",
            len(request.approved_suggestions),
            len(request.approved_glossary_terms),
        )
        prompt = self._prompt_builder.finalize(
            original_text=request.original_text,
            approved_suggestions=request.approved_suggestions,
            approved_glossary_terms=request.approved_glossary_terms,
            source_language=request.source_language,
            series_notes=request.series_notes,
            series_description=request.series_description,
            chapter_id=request.chapter_id,
        )
        return await self._generate(prompt, FINALIZE_TEMPLATE, "Apply quality")
