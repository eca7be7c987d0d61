"""Typed records extracted from raw model responses."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_READABILITY_SCORE = 85


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys, populated by either name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EntityType(str, Enum):
    PERSON = "Person"
    PLACE = "Place"
    TECHNIQUE = "Technique"
    ORGANIZATION = "Organization"
    ITEM = "Item"
    TERM = "Term"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    UNKNOWN = "Unknown"


class Role(str, Enum):
    PROTAGONIST = "Protagonist"
    ANTAGONIST = "Antagonist"
    SUPPORTING = "Supporting"
    MINOR = "Minor"
    MENTOR = "Mentor"
    FAMILY = "Family"
    OTHER = "Other"


class GlossarySuggestion(CamelModel):
    """A new glossary term proposed by the model."""

    source_term: str
    translated_term: str
    entity_type: EntityType = EntityType.TERM
    gender: Gender | None = None
    role: Role | None = None
    notes: str | None = None

    def describe(self) -> str:
        """Render the term the way prompts list approved glossary entries."""
        info = f'"{self.source_term}" → "{self.translated_term}" ({self.entity_type.value})'
        if self.gender:
            info += f" [{self.gender.value}]"
        if self.role:
            info += f" [{self.role.value}]"
        if self.notes:
            info += f" - {self.notes}"
        return info


class QualityReport(CamelModel):
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    cultural_notes: list[str] = Field(default_factory=list)
    glossary_suggestions: list[GlossarySuggestion] = Field(default_factory=list)
    chapter_memory: str = ""
    chapter_summary: str = ""


class FormattingReport(CamelModel):
    """Tag/page-header consistency. Defaults mean "no problem detected"."""

    tag_consistency: bool = True
    page_headers_present: bool = True
    missing_tags: list[str] = Field(default_factory=list)


class ExtractedReport(CamelModel):
    """Result of parsing one raw model response.

    Every field has a safe default so a caller can always render it.
    """

    final_text: str = ""
    quality_report: QualityReport = Field(default_factory=QualityReport)
    formatting_report: FormattingReport = Field(default_factory=FormattingReport)
    readability_score: int = Field(default=DEFAULT_READABILITY_SCORE, ge=0, le=100)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
