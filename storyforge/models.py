"""Pydantic models for the functionality catalog, backlog and validation report.

Wire format is camelCase JSON (what the completion prompts ask for and what
run artifacts contain); Python attributes are snake_case. Models accept both
spellings on input and dump camelCase with ``by_alias=True``.

Three model families:
- Catalog: Actor / Functionality / GlossaryEntry / FunctionalityCatalog,
  produced by the functionality extractor
- Backlog: TraceLink / NotesSection / UserStory / Backlog, the validated output
- Validation: ValidationFinding / ValidationReport
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Dump to a camelCase JSON-compatible dict."""
        return self.model_dump(mode="json", by_alias=True)


def _coerce_str_list(v):
    """LLMs sometimes return empty string or None instead of []."""
    if v is None or v == "":
        return []
    if isinstance(v, str):
        return [v]
    return [str(x) for x in v if x is not None]


# =============================================================================
# Functionality Catalog
# =============================================================================


class Actor(WireModel):
    """A role or persona referenced by functionalities and stories."""

    id: str = ""
    name: str = ""
    description: str = ""


class Functionality(WireModel):
    """One atomic, observable system capability backed by evidence chunks."""

    id: str = ""
    actor_id: str = ""
    action: str = ""
    user_goal: str = ""
    benefit: str = ""
    category: str = ""
    validations: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    source_chunk_ids: list[str] = Field(default_factory=list)

    @field_validator("validations", "notes", "source_chunk_ids", mode="before")
    @classmethod
    def coerce_to_list(cls, v):
        return _coerce_str_list(v)

    @field_validator("id", "actor_id", "action", "user_goal", "benefit", "category", mode="before")
    @classmethod
    def coerce_to_str(cls, v):
        return "" if v is None else str(v)

    @property
    def intent_text(self) -> str:
        """Action, goal and benefit as one text (used for actor matching)."""
        return f"{self.action} {self.user_goal} {self.benefit}".strip()

    @property
    def full_text(self) -> str:
        """Intent text plus validations (used for coverage and traceability)."""
        return f"{self.intent_text} {' '.join(self.validations)}".strip()


class GlossaryEntry(WireModel):
    term: str = ""
    meaning: str = ""
    source_chunk_ids: list[str] = Field(default_factory=list)

    @field_validator("source_chunk_ids", mode="before")
    @classmethod
    def coerce_to_list(cls, v):
        return _coerce_str_list(v)


class FunctionalityCatalog(WireModel):
    """Output of the functionality extractor: actors, capabilities, glossary."""

    actors: list[Actor] = Field(default_factory=list)
    functionalities: list[Functionality] = Field(default_factory=list)
    glossary: list[GlossaryEntry] = Field(default_factory=list)
    open_questions: list[str] = Field(default_factory=list)

    @field_validator("actors", "functionalities", "glossary", mode="before")
    @classmethod
    def coerce_none(cls, v):
        return [] if v is None else v

    @field_validator("open_questions", mode="before")
    @classmethod
    def coerce_questions(cls, v):
        return _coerce_str_list(v)

    @property
    def categories(self) -> list[str]:
        """Distinct non-empty functionality categories in order of appearance."""
        seen: list[str] = []
        for f in self.functionalities:
            category = f.category.strip()
            if category and category not in seen:
                seen.append(category)
        return seen


# =============================================================================
# Backlog
# =============================================================================


class TraceLink(WireModel):
    """Pointer from a story to a source evidence chunk."""

    chunk_id: str
    confidence: float | None = Field(default=None, ge=0, le=1)


class NotesSection(WireModel):
    section: str = Field(min_length=2)
    bullets: list[str] = Field(min_length=1)

    @field_validator("bullets")
    @classmethod
    def bullets_min_length(cls, v: list[str]) -> list[str]:
        for bullet in v:
            if len(bullet) < 3:
                raise ValueError(f"bullet too short: '{bullet}'")
        return v


class UserStory(WireModel):
    """One backlog item."""

    story_id: str
    epic: str | None = None
    title: str = Field(min_length=3)
    role: str = Field(min_length=2)
    want: str = Field(min_length=3)
    so_that: str = Field(min_length=3)
    notes_hu: list[NotesSection] = Field(min_length=1)
    acceptance_criteria: list[str] = Field(min_length=3)
    traceability: list[TraceLink] = Field(min_length=1)
    assumptions: list[str] = Field(default_factory=list)
    open_questions: list[str] = Field(default_factory=list)

    @field_validator("acceptance_criteria")
    @classmethod
    def criteria_min_length(cls, v: list[str]) -> list[str]:
        for criterion in v:
            if len(criterion) < 10:
                raise ValueError(f"acceptance criterion too short: '{criterion}'")
        return v

    @field_validator("assumptions", "open_questions", mode="before")
    @classmethod
    def coerce_to_list(cls, v):
        return _coerce_str_list(v)


class Backlog(WireModel):
    """The full output artifact of a run."""

    document_id: str
    version_id: str
    generated_at: str
    user_stories: list[UserStory] = Field(min_length=1)


class ExpectedStory(WireModel):
    """A reference (golden) or human-corrected story.

    Looser than ``UserStory``: notes are a flattened multi-line string and no
    minimum lengths apply.
    """

    story_id: str = ""
    epic: str = ""
    title: str = ""
    role: str = ""
    want: str = ""
    so_that: str = ""
    acceptance_criteria: list[str] = Field(default_factory=list)
    notes_hu: str = ""


# =============================================================================
# Validation
# =============================================================================


class FindingType(str, Enum):
    DUPLICATE = "duplicate"
    AMBIGUITY = "ambiguity"
    UNSUPPORTED = "unsupported"
    CONTRADICTION = "contradiction"
    NON_TESTABLE = "non_testable"
    MISSING_FLOW = "missing_flow"
    TOO_LARGE = "too_large"
    BAD_FORMAT = "bad_format"
    BAD_ACTOR = "bad_actor"
    MISSING_NOTES = "missing_notes"
    WEAK_AC = "weak_ac"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ValidationFinding(WireModel):
    """One detected quality issue."""

    type: FindingType
    severity: Severity
    target_id: str | None = None
    message: str
    suggested_fix: str | None = None
    evidence_chunk_ids: list[str] = Field(default_factory=list)


class ValidationReport(WireModel):
    """Aggregate verdict: score, findings and a summary."""

    score: float = Field(ge=0, le=100)
    findings: list[ValidationFinding] = Field(default_factory=list)
    summary: str = ""
