"""
Exam assembly: creation, editing, finalization and publishing of exam books.

    draft --finalize--> finalized --publish--> published

Only approved questions can be selected. Edits are allowed while draft only; finalize,
publish and delete are open to the creator or an admin. Deleting a question never touches
exam books, so a book may hold ids that no longer resolve. Mutations are serialized by a
per-engine lock held from reading the collection until the new one is swapped in.
"""
import logging
import threading
import uuid
from typing import Sequence

from qbank.errors import NotFoundError, PermissionDenied, StateError, StorageError, ValidationError
from qbank.schemas.exam_book import MIN_DURATION_MINUTES, ExamBook, ExamBookForm
from qbank.schemas.question import Question
from qbank.schemas.user import UserProfile
from qbank.services.access import (
    can_create_exam_book,
    can_edit_exam_book,
    can_manage_exam_book,
    can_view_exam_book,
)
from qbank.services.workflow import QuestionWorkflow, now_iso
from qbank.storage import ExamBookStore

logger = logging.getLogger(__name__)

_REQUIRED_FORM_FIELDS = [
    ("title", "title", "Title is required"),
    ("description", "description", "Description is required"),
    ("subject", "subject", "Subject is required"),
    ("semester", "semester", "Semester is required"),
    ("academic_year", "academicYear", "Academic year is required"),
]


def new_exam_book_id() -> str:
    return f"exam_{uuid.uuid4().hex}"


class ExamAssembly:
    def __init__(self, store: ExamBookStore, questions: QuestionWorkflow):
        self.store = store
        self.questions = questions
        self._lock = threading.Lock()
        self.load_result = store.load()
        if not self.load_result.success:
            logger.error("Exam book store unusable (%s); starting empty", self.load_result.error)
        self._books: list[ExamBook] = list(self.load_result.data)

    @property
    def exam_books(self) -> list[ExamBook]:
        return list(self._books)

    def find(self, exam_book_id: str) -> ExamBook | None:
        for book in self._books:
            if book.id == exam_book_id:
                return book
        return None

    def get(self, exam_book_id: str) -> ExamBook:
        book = self.find(exam_book_id)
        if book is None:
            raise NotFoundError(f"Exam book not found: {exam_book_id}")
        return book

    def get_for(self, actor: UserProfile | None, exam_book_id: str) -> ExamBook:
        book = self.get(exam_book_id)
        if not can_view_exam_book(actor, book):
            raise PermissionDenied("You do not have access to this exam book")
        return book

    def visible_exam_books(
        self, actor: UserProfile | None, search: str | None = None, subject: str | None = None
    ) -> list[ExamBook]:
        """Books the actor may view, filtered by a case-insensitive search term and an exact subject."""
        term = (search or "").strip().lower()
        books = [b for b in self._books if can_view_exam_book(actor, b)]
        if term:
            books = [
                b for b in books
                if term in b.title.lower() or term in b.description.lower() or term in b.subject.lower()
            ]
        if subject:
            books = [b for b in books if b.subject == subject]
        return books

    def subjects(self, actor: UserProfile | None) -> list[str]:
        return sorted({b.subject for b in self.visible_exam_books(actor)})

    def resolve_questions(self, book: ExamBook) -> list[tuple[str, Question | None]]:
        return [(qid, self.questions.find(qid)) for qid in book.questions]

    # --- validation ---

    def _validate(self, form: ExamBookForm, question_ids: Sequence[str]) -> list[str]:
        """Collect every problem with the form and the selection; returns the de-duplicated ids."""
        errors: dict[str, str] = {}
        for name, key, message in _REQUIRED_FORM_FIELDS:
            if not (getattr(form, name) or "").strip():
                errors[key] = message
        if form.duration < MIN_DURATION_MINUTES:
            errors["duration"] = f"Duration must be at least {MIN_DURATION_MINUTES} minutes"
        ids = list(dict.fromkeys(question_ids))
        if not ids:
            errors["questions"] = "Please select at least one question"
        else:
            ineligible = []
            for qid in ids:
                q = self.questions.find(qid)
                if q is None or q.status != "approved":
                    ineligible.append(qid)
            if ineligible:
                errors["questions"] = "Only approved questions can be included: " + ", ".join(ineligible)
        if errors:
            raise ValidationError(errors)
        return ids

    @staticmethod
    def _form_fields(form: ExamBookForm) -> dict:
        data = {name: getattr(form, name) for name in ExamBookForm.model_fields}
        for name in ("title", "description", "subject", "instructions", "semester", "academic_year"):
            data[name] = data[name].strip()
        return data

    # --- persistence ---

    def _commit(self, books: list[ExamBook]) -> None:
        """Persist then swap. Callers hold self._lock."""
        result = self.store.save(books)
        if not result.success:
            raise StorageError(result.error or "Failed to save exam books")
        self._books = books

    def _replace(self, updated: ExamBook) -> None:
        self._commit([updated if b.id == updated.id else b for b in self._books])

    # --- operations ---

    def create_exam_book(
        self, form: ExamBookForm, question_ids: Sequence[str], actor: UserProfile | None
    ) -> str:
        if not can_create_exam_book(actor):
            logger.warning("Exam book creation denied for %s", getattr(actor, "id", None))
            raise PermissionDenied("Only coordinators and administrators can create exam books")
        ids = self._validate(form, question_ids)
        book = ExamBook(
            **self._form_fields(form),
            id=new_exam_book_id(),
            questions=ids,
            total_points=len(ids),
            created_by=actor.id,
            created_at=now_iso(),
            status="draft",
        )
        with self._lock:
            self._commit([*self._books, book])
        logger.info("Exam book %s created by %s with %s questions", book.id, actor.id, len(ids))
        return book.id

    def update_exam_book(
        self, exam_book_id: str, form: ExamBookForm, question_ids: Sequence[str], actor: UserProfile | None
    ) -> ExamBook:
        with self._lock:
            book = self.get(exam_book_id)
            if not can_edit_exam_book(actor, book):
                logger.warning("Exam book %s edit denied for %s", book.id, getattr(actor, "id", None))
                raise PermissionDenied("You cannot edit this exam book")
            ids = self._validate(form, question_ids)
            updated = book.model_copy(update={
                **self._form_fields(form),
                "questions": ids,
                "total_points": len(ids),
                "updated_at": now_iso(),
            })
            self._replace(updated)
        logger.info("Exam book %s updated by %s", book.id, actor.id)
        return updated

    def _transition(self, exam_book_id: str, actor: UserProfile | None, source: str, target: str) -> ExamBook:
        with self._lock:
            book = self.get(exam_book_id)
            if not can_manage_exam_book(actor, book):
                logger.warning("Exam book %s %s denied for %s", book.id, target, getattr(actor, "id", None))
                raise PermissionDenied("Only the creator or an administrator can change this exam book's status")
            if book.status != source:
                raise StateError(f"Exam book {book.id} is {book.status}; only {source} books can become {target}")
            updated = book.model_copy(update={"status": target, "updated_at": now_iso()})
            self._replace(updated)
        logger.info("Exam book %s %s by %s", book.id, target, actor.id)
        return updated

    def finalize_exam_book(self, exam_book_id: str, actor: UserProfile | None) -> ExamBook:
        return self._transition(exam_book_id, actor, "draft", "finalized")

    def publish_exam_book(self, exam_book_id: str, actor: UserProfile | None) -> ExamBook:
        return self._transition(exam_book_id, actor, "finalized", "published")

    def delete_exam_book(self, exam_book_id: str, actor: UserProfile | None) -> None:
        with self._lock:
            book = self.get(exam_book_id)
            if not can_manage_exam_book(actor, book):
                raise PermissionDenied("Only the creator or an administrator can delete this exam book")
            self._commit([b for b in self._books if b.id != exam_book_id])
        logger.info("Exam book %s deleted by %s", book.id, actor.id)
