"""Parse section-numbered model output into an ExtractedReport.

Models are asked to answer in numbered, labelled sections such as::

    1. **FINAL TEXT:**
    === Page 1 ===
    "": ...

    2. **QUALITY REPORT:**
    {"issues": [], ..., "chapterMemory": "...", "chapterSummary": "..."}

Section headings are data (ResponseTemplate); a change in the prompt's
section layout is a new template, not new parsing code. Extraction never
raises: each section degrades to strict parse -> repaired parse -> field
scrape -> default.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any

from webtoon_translator.models.report import (
    DEFAULT_READABILITY_SCORE,
    EntityType,
    ExtractedReport,
    FormattingReport,
    Gender,
    GlossarySuggestion,
    QualityReport,
    Role,
)

logger = logging.getLogger(__name__)

# Tunable heuristic: a reply that skips the headings but starts with a page
# header is taken to be the translation block itself.
PAGE_DELIMITER_MARKER = "==="

CODE_FENCE = re.compile(r"```[\w-]*")
BRACKETED_PAGE_HEADER = re.compile(r"\[(\s*===\s*Page\s+\d+[^\]\n]*?===\s*)\]")
PAGE_HEADER = re.compile(r"[ \t]*(===[ \t]*Page[ \t]+\d+[^=\n]*===)[ \t]*")
EXCESS_NEWLINES = re.compile(r"\n{3,}")
WHITESPACE = re.compile(r"\s+")
LINE_COMMENT = re.compile(r"^\s*//.*$", re.MULTILINE)
TRAILING_COMMA = re.compile(r",(\s*[}\]])")
BULLET = re.compile(r"(?:^|\n)[ \t]*(?:[-•][ \t]*|\*(?!\*)[ \t]+)")
HEADING_FRAGMENT = re.compile(r"^(?:\*\*|#)")
INTEGER = re.compile(r"-?\d+")
FLAT_OBJECT = re.compile(r"\{[^{}]*\}")
STRING_PAIR = re.compile(r'"(\w+)"\s*:\s*"((?:[^"\\]|\\.)*)"')
QUOTED = re.compile(r'"((?:[^"\\]|\\.)*)"')


@dataclass(frozen=True)
class SectionSpec:
    """A report field, the heading label that introduces it and how to parse it.

    kind is one of: text, json_object, json_array, list, note, score.
    """

    name: str
    label: str
    kind: str = "text"


@dataclass(frozen=True)
class ResponseTemplate:
    name: str
    sections: tuple[SectionSpec, ...]

    def locate(self, text: str) -> dict[str, str]:
        """Map section name -> raw section content for headings present in text.

        Headings at the start of a line win; a heading that follows other text
        on its line ("Here is the result: 1. **FINAL TEXT:**") is accepted
        when no line-start heading exists for that section.
        """
        headings, inline, boundary = _compile(tuple(s.label for s in self.sections))
        matches: dict[str, re.Match] = {}
        for section in self.sections:
            match = headings[section.label].search(text) or inline[section.label].search(text)
            if match:
                matches[section.name] = match

        starts = sorted(match.start() for match in matches.values())
        found: dict[str, str] = {}
        for name, match in matches.items():
            ends = [start for start in starts if start >= match.end()]
            next_heading = boundary.search(text, match.end())
            if next_heading:
                ends.append(next_heading.start())
            found[name] = text[match.end():min(ends, default=len(text))]
        return found


def _heading_regex(labels: str, line_start: bool = True) -> str:
    # "2. **QUALITY REPORT:**", "2. QUALITY REPORT", "**2. Quality Report**:" ...
    prefix = r"^[ \t>#*_]*" if line_start else r"(?<=\s)[>#*_]*"
    return (
        rf"{prefix}\d+[.)][ \t]*[*_]*[ \t]*(?:{labels})(?!\w)"
        # Extra label words before a colon: "ISSUES FOUND:"
        r"(?:[ \t]+[^\W\d_][^\n:*]*?(?=[*_]*[ \t]*:))?"
        r"[ \t]*:?[ \t]*[*_]*[ \t]*:?"
    )


def _label_regex(label: str) -> str:
    return r"[ \t]+".join(re.escape(word) for word in label.split())


@lru_cache(maxsize=None)
def _compile(
    labels: tuple[str, ...],
) -> tuple[dict[str, re.Pattern], dict[str, re.Pattern], re.Pattern]:
    flags = re.IGNORECASE | re.MULTILINE
    headings = {
        label: re.compile(_heading_regex(_label_regex(label)), flags) for label in labels
    }
    inline = {
        label: re.compile(_heading_regex(_label_regex(label), line_start=False), flags)
        for label in labels
    }
    boundary = re.compile(
        _heading_regex("|".join(_label_regex(label) for label in labels)), flags
    )
    return headings, inline, boundary


# Finalize pass: translation plus machine-readable reports
FINALIZE_TEMPLATE = ResponseTemplate(
    name="finalize",
    sections=(
        SectionSpec("final_text", "FINAL TEXT"),
        SectionSpec("quality_report", "QUALITY REPORT", "json_object"),
        SectionSpec("formatting_report", "FORMATTING REPORT", "json_object"),
        SectionSpec("readability_score", "READABILITY SCORE", "score"),
    ),
)

# Review pass: translation plus bullet lists and a glossary JSON array
REVIEW_TEMPLATE = ResponseTemplate(
    name="review",
    sections=(
        SectionSpec("final_text", "IMPROVED TEXT"),
        SectionSpec("issues", "ISSUES", "list"),
        SectionSpec("suggestions", "SUGGESTIONS", "list"),
        SectionSpec("cultural_notes", "CULTURAL NOTES", "list"),
        SectionSpec("glossary_suggestions", "GLOSSARY ENTRIES", "json_array"),
        SectionSpec("chapter_memory", "CHAPTER MEMORY", "note"),
        SectionSpec("chapter_summary", "CHAPTER SUMMARY", "note"),
    ),
)


def extract(raw_text: str, template: ResponseTemplate = FINALIZE_TEMPLATE) -> ExtractedReport:
    """
    Turn raw model text into an ExtractedReport.

    Args:
        raw_text: Model response, possibly malformed or empty.
        template: Section layout the prompt asked for.

    Returns:
        ExtractedReport; fields that could not be recovered keep their defaults.
    """
    try:
        return _extract(raw_text if isinstance(raw_text, str) else "", template)
    except Exception as e:
        logger.exception("Structured extraction failed, returning defaults: %s", e)
        return ExtractedReport()


def _extract(text: str, template: ResponseTemplate) -> ExtractedReport:
    sections = template.locate(text)

    quality_fields: dict[str, Any] = {}
    formatting = FormattingReport()
    score = DEFAULT_READABILITY_SCORE

    primary: str | None = None
    for section in template.sections:
        content = sections.get(section.name)
        if content is None:
            continue
        if section.kind == "text":
            primary = content
        elif section.kind == "json_object" and section.name == "formatting_report":
            formatting = _parse_formatting_report(content)
        elif section.kind == "json_object":
            quality_fields.update(_parse_quality_report(content))
        elif section.kind == "score":
            score = _parse_score(content)
        elif section.kind == "list":
            quality_fields[section.name] = _parse_list(content)
        elif section.kind == "json_array":
            quality_fields[section.name] = _parse_glossary(content)
        elif section.kind == "note":
            quality_fields[section.name] = content.strip()

    final_text = _primary_text(text, primary)

    report = ExtractedReport(
        final_text=final_text,
        quality_report=QualityReport(**quality_fields),
        formatting_report=formatting,
        readability_score=score,
    )
    logger.info(
        "Extracted %s response: final_text=%d chars, issues=%d, suggestions=%d, "
        "glossary=%d, memory=%d chars, summary=%d chars, score=%d",
        template.name,
        len(report.final_text),
        len(report.quality_report.issues),
        len(report.quality_report.suggestions),
        len(report.quality_report.glossary_suggestions),
        len(report.quality_report.chapter_memory),
        len(report.quality_report.chapter_summary),
        report.readability_score,
    )
    return report


def clean_primary_text(text: str) -> str:
    """Strip code fences and put page headers on their own paragraph."""
    text = CODE_FENCE.sub("", text)
    text = BRACKETED_PAGE_HEADER.sub(r"\1", text)
    text = PAGE_HEADER.sub(r"\n\n\1\n\n", text)
    text = EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def _primary_text(text: str, section: str | None) -> str:
    if section is not None:
        cleaned = clean_primary_text(section)
        if cleaned:
            return cleaned

    stripped = text.strip()
    if stripped.startswith(PAGE_DELIMITER_MARKER):
        logger.warning("No primary text heading, using page-delimited response")
        return clean_primary_text(stripped)

    if stripped:
        logger.warning("No primary text heading, using entire response as text")
    return stripped


def _loads(candidate: str) -> Any:
    """Strict parse, then one repair pass. Raises ValueError if both fail."""
    try:
        return json.loads(WHITESPACE.sub(" ", candidate).strip())
    except ValueError:
        pass
    repaired = LINE_COMMENT.sub("", candidate)
    repaired = TRAILING_COMMA.sub(r"\1", repaired)
    return json.loads(WHITESPACE.sub(" ", repaired).strip())


def _embedded(content: str, opener: str, closer: str) -> str | None:
    body = CODE_FENCE.sub("", content)
    start = body.find(opener)
    end = body.rfind(closer)
    if start == -1 or end <= start:
        return None
    return body[start:end + 1]


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"', strict=False)
    except ValueError:
        return value


def _scrape_string(content: str, field_name: str) -> str:
    match = re.search(rf'"{field_name}"\s*:\s*"((?:[^"\\]|\\.)*)"', content)
    return _unescape(match.group(1)).strip() if match else ""


def _scrape_bool(content: str, field_name: str, default: bool) -> bool:
    match = re.search(rf'"{field_name}"\s*:\s*(true|false)', content, re.IGNORECASE)
    return match.group(1).lower() == "true" if match else default


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        return "\n".join(f"{k}: {v}" for k, v in value.items())
    if isinstance(value, list):
        return "\n".join(str(v) for v in value)
    return str(value).strip()


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, list):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return []


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    return default


def _pick(data: dict, *keys: str) -> Any:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


def _enum_value(enum_cls: type[Enum], value: Any, default: Any) -> Any:
    if not isinstance(value, str):
        return default
    wanted = value.strip().lower()
    for member in enum_cls:
        if member.value.lower() == wanted:
            return member
    return default


def _parse_quality_report(content: str) -> dict[str, Any]:
    candidate = _embedded(content, "{", "}")
    if candidate is not None:
        try:
            data = _loads(candidate)
            if isinstance(data, dict):
                return {
                    "issues": _as_list(data.get("issues")),
                    "suggestions": _as_list(data.get("suggestions")),
                    "cultural_notes": _as_list(_pick(data, "culturalNotes", "cultural_notes")),
                    "glossary_suggestions": _glossary_from(
                        _pick(data, "glossarySuggestions", "glossary_suggestions")
                    ),
                    "chapter_memory": _as_text(_pick(data, "chapterMemory", "chapter_memory")),
                    "chapter_summary": _as_text(_pick(data, "chapterSummary", "chapter_summary")),
                }
        except ValueError as e:
            logger.warning("Quality report JSON unparsable (%s), scraping fields", e)

    return {
        "chapter_memory": _scrape_string(content, "chapterMemory"),
        "chapter_summary": _scrape_string(content, "chapterSummary"),
    }


def _parse_formatting_report(content: str) -> FormattingReport:
    candidate = _embedded(content, "{", "}")
    if candidate is not None:
        try:
            data = _loads(candidate)
            if isinstance(data, dict):
                return FormattingReport(
                    tag_consistency=_as_bool(data.get("tagConsistency"), True),
                    page_headers_present=_as_bool(data.get("pageHeadersPresent"), True),
                    missing_tags=_as_list(data.get("missingTags")),
                )
        except ValueError as e:
            logger.warning("Formatting report JSON unparsable (%s), scraping fields", e)

    missing: list[str] = []
    # Tags themselves may contain brackets ("[]"), so match quoted items only
    tags_match = re.search(
        r'"missingTags"\s*:\s*\[((?:\s*"(?:[^"\\]|\\.)*"\s*,?)*)', content
    )
    if tags_match:
        missing = [_unescape(t) for t in QUOTED.findall(tags_match.group(1))]
    return FormattingReport(
        tag_consistency=_scrape_bool(content, "tagConsistency", True),
        page_headers_present=_scrape_bool(content, "pageHeadersPresent", True),
        missing_tags=missing,
    )


def _parse_score(content: str) -> int:
    match = INTEGER.search(content)
    if not match:
        return DEFAULT_READABILITY_SCORE
    try:
        score = int(match.group())
    except ValueError:
        # Digit strings beyond the interpreter's int conversion limit
        logger.warning("Readability score unparsable, using default")
        return DEFAULT_READABILITY_SCORE
    return max(0, min(100, score))


def _parse_list(content: str) -> list[str]:
    stripped = CODE_FENCE.sub("", content).strip()
    if stripped.startswith("["):
        try:
            data = _loads(stripped)
            if isinstance(data, list):
                return _as_list(data)
        except ValueError:
            pass

    entries = []
    for part in BULLET.split(stripped):
        entry = part.strip()
        if not entry or HEADING_FRAGMENT.match(entry):
            continue
        entries.append(entry)
    return entries


def _glossary_entry(data: dict) -> GlossarySuggestion | None:
    source = _pick(data, "sourceTerm", "source_term", "term", "source")
    translated = _pick(data, "translatedTerm", "translated_term", "translation")
    if not isinstance(source, str) or not isinstance(translated, str):
        return None
    return GlossarySuggestion(
        source_term=source.strip(),
        translated_term=translated.strip(),
        entity_type=_enum_value(
            EntityType, _pick(data, "entityType", "entity_type"), EntityType.TERM
        ),
        gender=_enum_value(Gender, data.get("gender"), None),
        role=_enum_value(Role, data.get("role"), None),
        notes=_as_text(_pick(data, "notes", "alias")) or None,
    )


def _glossary_from(value: Any) -> list[GlossarySuggestion]:
    entries: list[GlossarySuggestion] = []
    if isinstance(value, list):
        for item in value:
            entry = _glossary_entry(item) if isinstance(item, dict) else None
            if entry:
                entries.append(entry)
            else:
                logger.warning("Skipping malformed glossary entry: %s", item)
    elif isinstance(value, dict):
        # {"source term": "translation"} or {"source term": {"translation": ...}}
        for term, data in value.items():
            if isinstance(data, str):
                data = {"translation": data}
            if isinstance(data, dict):
                entry = _glossary_entry({"sourceTerm": term, **data})
                if entry:
                    entries.append(entry)
    return entries


def _parse_glossary(content: str) -> list[GlossarySuggestion]:
    candidate = _embedded(content, "[", "]")
    if candidate is None:
        candidate = _embedded(content, "{", "}")
    if candidate is not None:
        try:
            return _glossary_from(_loads(candidate))
        except ValueError as e:
            logger.warning("Glossary JSON unparsable (%s), scraping entries", e)

    entries = []
    for block in FLAT_OBJECT.findall(content):
        fields = {k: _unescape(v) for k, v in STRING_PAIR.findall(block)}
        entry = _glossary_entry(fields)
        if entry:
            entries.append(entry)
    return entries
