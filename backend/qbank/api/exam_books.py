"""
Exam books API: list visible (search, subject filter), get with resolved questions, create, update,
finalize, publish, delete, and downloads (.txt, .csv of its questions, .docx).
"""
import logging

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import StreamingResponse

from qbank.api.deps import get_container, get_current_user
from qbank.container import Container
from qbank.schemas.exam_book import (
    ExamBook,
    ExamBookDetailResponse,
    ExamBookListResponse,
    ExamBookQuestionEntry,
    ExamBookRequest,
)
from qbank.schemas.user import UserProfile
from qbank.services.export import exam_book_docx, exam_book_filename, exam_book_text, questions_to_csv

router = APIRouter(prefix="/exam-books", tags=["exam-books"])
logger = logging.getLogger(__name__)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _attachment(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f"attachment; filename={filename}"}


@router.get("", response_model=ExamBookListResponse)
def list_exam_books(
    search: str | None = None,
    subject: str | None = None,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    items = container.assembly.visible_exam_books(current_user, search=search, subject=subject)
    return ExamBookListResponse(items=items, total=len(items))


@router.get("/subjects", response_model=list[str])
def list_subjects(
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    """Distinct subjects of the visible exam books (for the subject filter)."""
    return container.assembly.subjects(current_user)


@router.get("/export/json")
def export_json(
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    body = container.exam_book_store.export_json(container.assembly.visible_exam_books(current_user))
    return Response(content=body, media_type="application/json", headers=_attachment("exam-books-backup.json"))


@router.get("/{exam_book_id}", response_model=ExamBookDetailResponse)
def get_exam_book(
    exam_book_id: str,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    """Exam book with its questions in order; question is null where the id no longer resolves."""
    book = container.assembly.get_for(current_user, exam_book_id)
    entries = [
        ExamBookQuestionEntry(position=i, question_id=qid, question=q)
        for i, (qid, q) in enumerate(container.assembly.resolve_questions(book), start=1)
    ]
    return ExamBookDetailResponse(**book.model_dump(), entries=entries)


@router.post("", response_model=ExamBook, status_code=status.HTTP_201_CREATED)
def create_exam_book(
    body: ExamBookRequest,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    exam_book_id = container.assembly.create_exam_book(body, body.question_ids, current_user)
    return container.assembly.get(exam_book_id)


@router.put("/{exam_book_id}", response_model=ExamBook)
def update_exam_book(
    exam_book_id: str,
    body: ExamBookRequest,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.assembly.update_exam_book(exam_book_id, body, body.question_ids, current_user)


@router.post("/{exam_book_id}/finalize", response_model=ExamBook)
def finalize_exam_book(
    exam_book_id: str,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.assembly.finalize_exam_book(exam_book_id, current_user)


@router.post("/{exam_book_id}/publish", response_model=ExamBook)
def publish_exam_book(
    exam_book_id: str,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.assembly.publish_exam_book(exam_book_id, current_user)


@router.delete("/{exam_book_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_exam_book(
    exam_book_id: str,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    container.assembly.delete_exam_book(exam_book_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{exam_book_id}/export/txt")
def export_txt(
    exam_book_id: str,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    book = container.assembly.get_for(current_user, exam_book_id)
    body = exam_book_text(book, container.assembly.resolve_questions(book))
    return Response(
        content=body,
        media_type="text/plain; charset=utf-8",
        headers=_attachment(exam_book_filename(book, "txt")),
    )


@router.get("/{exam_book_id}/export/csv")
def export_csv(
    exam_book_id: str,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    """The book's questions in exam order; dangling ids are left out."""
    book = container.assembly.get_for(current_user, exam_book_id)
    questions = [q for _, q in container.assembly.resolve_questions(book) if q is not None]
    return Response(
        content=questions_to_csv(questions),
        media_type="text/csv; charset=utf-8",
        headers=_attachment(exam_book_filename(book, "csv")),
    )


@router.get("/{exam_book_id}/export/docx")
def export_docx(
    exam_book_id: str,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    """Export to .docx: questions, answer key, explanations."""
    book = container.assembly.get_for(current_user, exam_book_id)
    buf = exam_book_docx(book, container.assembly.resolve_questions(book))
    return StreamingResponse(buf, media_type=DOCX_MEDIA_TYPE, headers=_attachment(exam_book_filename(book, "docx")))
