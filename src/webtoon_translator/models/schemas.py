"""Pydantic models for batch requests, results and handler events."""

import re
from pathlib import Path
from typing import Any

from pydantic import Field

from webtoon_translator.models.report import CamelModel, GlossarySuggestion

_FIRST_NUMBER = re.compile(r"\d+")


class ImageRef(CamelModel):
    """A page image held by the image store."""

    name: str
    key: str
    bucket: str = ""
    mime_type: str = "image/jpeg"

    @property
    def sort_number(self) -> int:
        """First number in the filename ("01.jpg" -> 1), 0 if none."""
        match = _FIRST_NUMBER.search(Path(self.name).stem)
        return int(match.group()) if match else 0


class ItemResult(CamelModel):
    """Terminal outcome of one work item."""

    sequence_number: int
    success: bool
    payload: Any = None
    error: str | None = None
    attempts: int = 0
    label: str | None = None


class BatchResult(CamelModel):
    results: list[ItemResult] = Field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0

    @property
    def failed(self) -> list[ItemResult]:
        return [r for r in self.results if not r.success]


class UsageStats(CamelModel):
    count: int
    per_credential_usage: list[int]
    total_usage: int


class BatchSettings(CamelModel):
    """Optional per-request overrides of the default batch configuration."""

    concurrency: int | None = None
    timeout_ms: int | None = None
    max_retries: int | None = None
    retry_delay_ms: int | None = None


class PageResult(CamelModel):
    page_number: int
    file_name: str
    extracted_text: str = ""
    raw_response: str = ""
    success: bool
    error: str | None = None


class ChapterRequest(CamelModel):
    """Pages of one chapter, given directly or as an image store prefix."""

    chapter_id: str = ""
    chapter_number: str = ""
    images: list[ImageRef] = Field(default_factory=list)
    prefix: str | None = None


class ChapterExtraction(CamelModel):
    chapter_id: str = ""
    chapter_number: str = ""
    success: bool = True
    extracted_text: str = ""
    pages: list[PageResult] = Field(default_factory=list)
    total_images: int = 0
    success_count: int = 0
    failure_count: int = 0
    error: str | None = None


class BulkExtraction(CamelModel):
    total_chapters: int
    success_count: int
    failure_count: int
    results: list[ChapterExtraction]


class ReviewRequest(CamelModel):
    original_text: str
    glossary: dict[str, Any] = Field(default_factory=dict)
    source_language: str = "Korean"
    series_notes: str = ""
    series_description: str = ""
    chapter_id: str | None = None
    raw_response: str | None = None


class FinalizeRequest(CamelModel):
    original_text: str
    approved_suggestions: list[str] = Field(default_factory=list)
    approved_glossary_terms: list[GlossarySuggestion] = Field(default_factory=list)
    custom_translation: str | None = None
    source_language: str = "Korean"
    series_notes: str = ""
    series_description: str = ""
    chapter_id: str | None = None
