"""
Question schemas. Persisted with camelCase keys (`clinicalVignette`, `leadQuestion`, ...); the old
`pathomecanism` and `learningObjective` spellings are still accepted on load.
"""
from typing import Literal, get_args

from pydantic import AliasChoices, ConfigDict, Field

from qbank.schemas.base import CamelModel

QuestionStatus = Literal["draft", "submitted", "under-review", "approved", "rejected", "needs-revision"]
QUESTION_STATUSES: tuple[str, ...] = get_args(QuestionStatus)
QuestionType = Literal["multiple-choice", "short-answer", "essay", "true-false"]
Pathomechanism = Literal[
    "congenital", "infection", "inflammation", "degenerative",
    "neoplasm", "trauma", "metabolism", "non-applicable",
]
Aspect = Literal["knowledge", "procedural-knowledge", "attitude", "health-system"]
ReviewDecision = Literal["approve", "reject", "revision"]

_PATHOMECHANISM_ALIASES = AliasChoices("pathomechanism", "pathomecanism")


class QuestionContent(CamelModel):
    """Author-editable part of a question."""
    clinical_vignette: str = ""
    lead_question: str = ""
    type: QuestionType = "multiple-choice"
    subject: str = ""
    topic: str = ""
    options: list[str] = []  # exactly 5 for multiple-choice: 1 correct + 4 distractors
    correct_answer: str | None = None
    explanation: str | None = None
    tags: list[str] = []
    learning_objectives: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("learningObjectives", "learningObjective", "learning_objectives"),
        serialization_alias="learningObjectives",
    )
    pathomechanism: Pathomechanism = Field("non-applicable", validation_alias=_PATHOMECHANISM_ALIASES)
    aspect: Aspect = "knowledge"
    disease: str | None = None
    references: str | None = None
    additional_picture_link: str | None = None

    @property
    def distractor_options(self) -> list[str]:
        return [o for o in self.options if o != self.correct_answer and o.strip()]


class Question(QuestionContent):
    id: str
    author_id: str
    author_name: str = ""
    status: QuestionStatus = "draft"
    reviewer_id: str | None = None
    reviewer_name: str | None = None
    reviewer1_id: str | None = None
    reviewer1: str | None = None
    reviewer2_id: str | None = None
    reviewer2: str | None = None
    feedback: str | None = None
    reviewer_comment: str | None = None
    created_at: str
    updated_at: str

    @property
    def assigned_reviewer_ids(self) -> tuple[str, ...]:
        return tuple(r for r in (self.reviewer1_id, self.reviewer2_id) if r)


class QuestionCreateRequest(QuestionContent):
    status: Literal["draft", "submitted"] = "draft"


class QuestionPatch(CamelModel):
    """Partial edit of QuestionContent. Omitted keys are unchanged; null clears an optional field. Unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid")

    clinical_vignette: str | None = None
    lead_question: str | None = None
    type: QuestionType | None = None
    subject: str | None = None
    topic: str | None = None
    options: list[str] | None = None
    correct_answer: str | None = None
    explanation: str | None = None
    tags: list[str] | None = None
    learning_objectives: list[str] | None = Field(
        None,
        validation_alias=AliasChoices("learningObjectives", "learningObjective", "learning_objectives"),
    )
    pathomechanism: Pathomechanism | None = Field(None, validation_alias=_PATHOMECHANISM_ALIASES)
    aspect: Aspect | None = None
    disease: str | None = None
    references: str | None = None
    additional_picture_link: str | None = None


class AssignReviewersRequest(CamelModel):
    reviewer1_id: str
    reviewer2_id: str


class ReviewDecisionRequest(CamelModel):
    decision: ReviewDecision
    feedback: str | None = None
    reviewer_comment: str | None = None
    edits: QuestionPatch | None = None


class QuestionListResponse(CamelModel):
    items: list[Question]
    total: int


class ImportResponse(CamelModel):
    imported: int
    question_ids: list[str]
