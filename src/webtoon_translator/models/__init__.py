"""Models package for webtoon translator."""

from webtoon_translator.models.report import (
    ExtractedReport,
    FormattingReport,
    GlossarySuggestion,
    QualityReport,
)
from webtoon_translator.models.schemas import BatchResult, ItemResult

__all__ = [
    "BatchResult",
    "ExtractedReport",
    "FormattingReport",
    "GlossarySuggestion",
    "ItemResult",
    "QualityReport",
]
