"""
Exam book schemas. `questions` holds question ids in exam order.
"""
from typing import Literal

from qbank.schemas.base import CamelModel
from qbank.schemas.question import Question

ExamBookStatus = Literal["draft", "finalized", "published"]

MIN_DURATION_MINUTES = 30


class ExamBookForm(CamelModel):
    title: str = ""
    description: str = ""
    subject: str = ""
    duration: int = 120  # minutes
    instructions: str = ""
    semester: str = ""
    academic_year: str = ""


class ExamBook(ExamBookForm):
    id: str
    total_points: int = 0
    questions: list[str] = []
    created_by: str
    created_at: str
    updated_at: str | None = None
    status: ExamBookStatus = "draft"


class ExamBookRequest(ExamBookForm):
    question_ids: list[str] = []


class ExamBookQuestionEntry(CamelModel):
    """One slot of an exam book; question is None when the id no longer resolves."""
    position: int
    question_id: str
    question: Question | None = None


class ExamBookDetailResponse(ExamBook):
    entries: list[ExamBookQuestionEntry] = []


class ExamBookListResponse(CamelModel):
    items: list[ExamBook]
    total: int
