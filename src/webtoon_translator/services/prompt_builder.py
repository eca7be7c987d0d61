"""Render model prompts from the Jinja2 templates in the prompts package."""

import json
import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from webtoon_translator.models.report import EntityType, Gender, GlossarySuggestion, Role

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent.parent / "prompts"

NO_TEXT_MARKER = "[NO_TEXT_CHUNK]"


class PromptBuilder:
    """Builds the OCR, review and finalize prompts."""

    def __init__(self, templates_dir: Path = PROMPTS_DIR):
        self._env = Environment(
            loader=FileSystemLoader(templates_dir),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def _render(self, template_name: str, **context) -> str:
        prompt = self._env.get_template(template_name).render(**context)
        logger.debug("Rendered %s prompt, length: %d chars", template_name, len(prompt))
        return prompt

    def ocr(self, source_language: str = "Korean") -> str:
        return self._render(
            "ocr.j2",
            source_language=source_language,
            no_text_marker=NO_TEXT_MARKER,
        )

    def review(
        self,
        original_text: str,
        glossary: dict | None = None,
        source_language: str = "Korean",
        series_notes: str = "",
        series_description: str = "",
        chapter_id: str | None = None,
    ) -> str:
        """Prompt for the translate-and-review pass."""
        return self._render(
            "review.j2",
            original_text=original_text,
            glossary_json=json.dumps(glossary or {}, ensure_ascii=False, indent=2),
            source_language=source_language,
            series_notes=series_notes,
            series_description=series_description,
            chapter_id=chapter_id,
            entity_types=[e.value for e in EntityType],
            genders=[g.value for g in Gender],
            roles=[r.value for r in Role],
        )

    def finalize(
        self,
        original_text: str,
        approved_suggestions: list[str] | None = None,
        approved_glossary_terms: list[GlossarySuggestion] | None = None,
        source_language: str = "Korean",
        series_notes: str = "",
        series_description: str = "",
        chapter_id: str | None = None,
    ) -> str:
        """Prompt for the final translation with user-approved changes only."""
        return self._render(
            "finalize.j2",
            original_text=original_text,
            suggestions=approved_suggestions or [],
            glossary_terms=[term.describe() for term in approved_glossary_terms or []],
            source_language=source_language,
            series_notes=series_notes,
            series_description=series_description,
            chapter_id=chapter_id,
        )
