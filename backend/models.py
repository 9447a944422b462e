from enum import Enum
from typing import List, Optional, Any, Dict
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from constants import DEFAULT_DIFFICULTY, DEFAULT_QUESTION_COUNT


# ===========================
# ENUMS AND BASE TYPES
# ===========================

class ContentType(str, Enum):
    EXAM = "exam"
    INTERVIEW = "interview"
    MCQ = "mcq"
    PROBLEM = "problem"


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class OutcomeStatus(str, Enum):
    SAVED = "saved"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class WireModel(BaseModel):
    """Base for models exchanged as camelCase JSON"""
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


def _unique(values: Optional[List[str]]) -> List[str]:
    if not values:
        return []
    return list(dict.fromkeys(v for v in values if isinstance(v, str) and v.strip()))


# ===========================
# GENERATION MODELS
# ===========================

class GenerationRequest(WireModel):
    """What the admin asked the generator for. Immutable once submitted."""
    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_schema_extra={
            "example": {
                "contentType": "mcq",
                "language": "JavaScript",
                "topic": "Closures",
                "difficulty": "intermediate",
                "count": 10,
                "includeExplanation": True,
                "includeTags": True,
                "includeCompanies": True,
            }
        }
    )

    content_type: ContentType = Field(ContentType.MCQ, alias="contentType")
    # Blank values are rejected by the gateway (400) rather than by the schema (422)
    language: str = ""
    topic: str = ""
    difficulty: Difficulty = Difficulty.INTERMEDIATE
    count: int = DEFAULT_QUESTION_COUNT
    include_explanation: bool = Field(True, alias="includeExplanation")
    include_tags: bool = Field(True, alias="includeTags")
    include_companies: bool = Field(True, alias="includeCompanies")
    context: Optional[str] = None


class CandidateItem(WireModel):
    """A generated-but-not-yet-persisted question or problem."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    content_type: ContentType = Field(ContentType.MCQ, alias="contentType")
    question_text: str = Field(
        "",
        validation_alias=AliasChoices("question", "questionText", "question_text"),
        serialization_alias="question",
    )
    options: List[str] = Field(default_factory=list)
    correct_answer: str = Field(
        "",
        validation_alias=AliasChoices("correctAnswer", "correct_answer"),
        serialization_alias="correctAnswer",
    )
    explanation: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    companies: List[str] = Field(default_factory=list)
    difficulty: str = DEFAULT_DIFFICULTY
    topic: str = Field("", validation_alias=AliasChoices("topic", "category"))
    language: str = ""

    @field_validator("tags", "companies", mode="before")
    @classmethod
    def _as_set(cls, value):
        # tags/companies are sets; keep first-seen order for stable output
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple, set)):
            raise ValueError(f"expected a list of strings, got {type(value).__name__}")
        return _unique([str(v).strip() for v in value])

    @field_validator("options", mode="before")
    @classmethod
    def _options_as_strings(cls, value):
        if value is None:
            return []
        return [str(v) if not isinstance(v, str) else v for v in value]

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _answer_as_string(cls, value):
        return "" if value is None else str(value)


class CorpusRecord(WireModel):
    """An already-persisted (or archived) question used for dedup and stats."""
    id: Optional[str] = None
    question_text: str = Field(
        "",
        validation_alias=AliasChoices("question", "questionText", "question_text"),
        serialization_alias="question",
    )
    language: str = ""
    topic: str = ""
    difficulty: Optional[str] = None
    concept: Optional[str] = None
    persisted: bool = True


# ===========================
# INGESTION / EXPORT RESULTS
# ===========================

class IngestionOutcome(WireModel):
    """Outcome for one candidate, positionally aligned with the input batch."""
    index: int
    candidate_id: str = Field(..., alias="candidateId")
    status: OutcomeStatus
    persisted_id: Optional[str] = Field(None, alias="persistedId")
    reason: Optional[str] = None

    @classmethod
    def saved(cls, index: int, candidate_id: str, persisted_id: str) -> "IngestionOutcome":
        return cls(index=index, candidate_id=candidate_id, status=OutcomeStatus.SAVED, persisted_id=persisted_id)

    @classmethod
    def duplicate(cls, index: int, candidate_id: str, reason: str) -> "IngestionOutcome":
        return cls(index=index, candidate_id=candidate_id, status=OutcomeStatus.DUPLICATE, reason=reason)

    @classmethod
    def failed(cls, index: int, candidate_id: str, error_message: str) -> "IngestionOutcome":
        return cls(index=index, candidate_id=candidate_id, status=OutcomeStatus.FAILED, reason=error_message)


class IngestionReport(WireModel):
    outcomes: List[IngestionOutcome] = Field(default_factory=list)
    saved_count: int = Field(0, alias="savedCount")
    duplicate_count: int = Field(0, alias="duplicateCount")
    error_count: int = Field(0, alias="errorCount")

    @property
    def total(self) -> int:
        return len(self.outcomes)

    def messages(self) -> List[str]:
        """Human readable line per non-saved outcome."""
        return [
            f"{o.status.value}: {o.reason}" for o in self.outcomes
            if o.status != OutcomeStatus.SAVED
        ]


class ExportReport(WireModel):
    exported_count: int = Field(..., alias="exportedCount")
    target_location: str = Field(..., alias="targetLocation")


class LanguageStats(WireModel):
    language: str
    total_questions: int = Field(0, alias="totalQuestions")
    total_in_db: int = Field(0, alias="totalInDB")
    counts_by_difficulty: Dict[str, int] = Field(default_factory=dict, alias="countsByDifficulty")
    concepts: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)


# ===========================
# API REQUEST / RESPONSE BODIES
# ===========================

class GenerateResponse(WireModel):
    success: bool
    content: Optional[List[CandidateItem]] = None
    metadata: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class BatchRequest(WireModel):
    """Body shared by save-generated and export-to-seeds"""
    questions: List[CandidateItem] = Field(default_factory=list)
    language: str = ""
    topic: str = ""


class SaveGeneratedResponse(WireModel):
    success: bool
    saved_count: int = Field(0, alias="savedCount")
    duplicate_count: int = Field(0, alias="duplicateCount")
    error_count: int = Field(0, alias="errorCount")
    total_questions: int = Field(0, alias="totalQuestions")
    outcomes: List[IngestionOutcome] = Field(default_factory=list)
    errors: Optional[List[str]] = None
    message: Optional[str] = None


class SeedLoadRequest(WireModel):
    """Concept names to load from the seed archive into the question store"""
    concepts: List[str] = Field(default_factory=list)


class SeedLoadResponse(SaveGeneratedResponse):
    processed_files: List[str] = Field(default_factory=list, alias="processedFiles")


class ExportResponse(WireModel):
    success: bool
    exported_count: int = Field(0, alias="exportedCount")
    file_path: str = Field("", alias="filePath")
    message: Optional[str] = None
    error: Optional[str] = None


class MetadataUpdateRequest(WireModel):
    category: str = ""
    metadata: Optional[Dict[str, Any]] = None
