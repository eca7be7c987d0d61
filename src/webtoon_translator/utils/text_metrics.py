"""Local formatting checks and readability estimate for translated text."""

import re

from webtoon_translator.models.report import FormattingReport

PAGE_HEADER_PATTERN = re.compile(r"===\s*Page\s+\d+[^=\n]*===")
SENTENCE_SPLIT = re.compile(r"[.!?]+")

# Tag marker -> pattern counting its uses ("": dialogue, (): thought, []: narration)
REQUIRED_TAGS = {
    '""': re.compile(r'""\s*:'),
    "()": re.compile(r"\(\)\s*:"),
    "[]": re.compile(r"\[\]\s*:"),
}

COMPLEX_WORD_LENGTH = 7


def analyze_formatting(text: str) -> FormattingReport:
    """Check page headers and presence of the core bubble tags."""
    missing_tags = [tag for tag, pattern in REQUIRED_TAGS.items() if not pattern.search(text)]
    return FormattingReport(
        tag_consistency=not missing_tags,
        page_headers_present=bool(PAGE_HEADER_PATTERN.search(text)),
        missing_tags=missing_tags,
    )


def calculate_readability_score(text: str) -> int:
    """
    Rough 0-100 readability score (higher is easier).

    Penalises long sentences and a high share of words longer than seven
    characters, each weighted by half.
    """
    sentences = [s for s in SENTENCE_SPLIT.split(text) if s.strip()]
    words = text.split()
    if not sentences or not words:
        return 0

    avg_words_per_sentence = len(words) / len(sentences)
    complex_words = sum(1 for w in words if len(w) > COMPLEX_WORD_LENGTH)
    percent_complex = complex_words / len(words) * 100

    raw_score = avg_words_per_sentence * 0.5 + percent_complex * 0.5
    return round(min(100.0, max(0.0, 100.0 - raw_score)))
