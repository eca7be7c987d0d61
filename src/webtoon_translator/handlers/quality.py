"""Handlers for review, finalize and standalone response parsing."""

import logging

from webtoon_translator.errors import InvalidRequestError
from webtoon_translator.models.schemas import FinalizeRequest, ReviewRequest
from webtoon_translator.services.quality_service import QualityService
from webtoon_translator.services.response_extractor import (
    FINALIZE_TEMPLATE,
    REVIEW_TEMPLATE,
    extract,
)

logger = logging.getLogger(__name__)

TEMPLATES = {
    FINALIZE_TEMPLATE.name: FINALIZE_TEMPLATE,
    REVIEW_TEMPLATE.name: REVIEW_TEMPLATE,
}


def _require_text(value: str | None) -> None:
    if not value or not value.strip():
        raise InvalidRequestError("Original text is required and cannot be empty")


async def review(service: QualityService, event: dict) -> dict:
    request = ReviewRequest.model_validate(event)
    _require_text(request.original_text)
    report = await service.review(request)
    return {"success": True, **report.to_json_dict()}


async def finalize(service: QualityService, event: dict) -> dict:
    request = FinalizeRequest.model_validate(event)
    _require_text(request.original_text)
    report = await service.finalize(request)
    return {
        "success": True,
        **report.to_json_dict(),
        "appliedGlossaryTerms": len(request.approved_glossary_terms),
    }


async def parse_response(event: dict) -> dict:
    """Parse a stored raw model response without calling the model."""
    template_name = event.get("template", FINALIZE_TEMPLATE.name)
    template = TEMPLATES.get(template_name)
    if template is None:
        raise InvalidRequestError(
            f"Unknown template '{template_name}', expected one of: {', '.join(TEMPLATES)}"
        )
    return extract(event.get("rawResponse") or "", template).to_json_dict()
