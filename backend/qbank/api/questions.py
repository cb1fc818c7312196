"""
Questions API: list visible, get, create, edit, submit, assign reviewers, review decision,
delete, CSV import/export and JSON backup. Rules live in QuestionWorkflow; this layer only
maps HTTP onto it.
"""
import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status

from qbank.api.deps import get_container, get_current_user
from qbank.container import Container
from qbank.errors import PermissionDenied
from qbank.schemas.question import (
    AssignReviewersRequest,
    ImportResponse,
    Question,
    QuestionCreateRequest,
    QuestionContent,
    QuestionListResponse,
    QuestionPatch,
    QuestionStatus,
    ReviewDecisionRequest,
)
from qbank.schemas.user import UserProfile
from qbank.services.access import can_assign_reviewers, can_view_question
from qbank.services.export import questions_to_csv

router = APIRouter(prefix="/questions", tags=["questions"])
logger = logging.getLogger(__name__)


def _list(items: list[Question]) -> QuestionListResponse:
    return QuestionListResponse(items=items, total=len(items))


@router.get("", response_model=QuestionListResponse)
def list_questions(
    search: str | None = None,
    subject: str | None = None,
    status_filter: QuestionStatus | None = Query(None, alias="status"),
    mine: bool = False,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    """Questions the user may see, narrowed by search term, subject, status or the user's own."""
    items = container.workflow.visible_questions(
        current_user, search=search, subject=subject, status=status_filter
    )
    if mine:
        items = [q for q in items if q.author_id == current_user.id]
    return _list(items)


@router.get("/pending-assignment", response_model=QuestionListResponse)
def pending_assignment(
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    if not can_assign_reviewers(current_user):
        raise PermissionDenied("Only administrators can see the assignment queue")
    return _list(container.workflow.pending_assignment())


@router.get("/assigned", response_model=QuestionListResponse)
def assigned_to_me(
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    """Questions under review where the current user is one of the two reviewers."""
    return _list(container.workflow.assigned_to(current_user.id))


@router.get("/export/csv")
def export_csv(
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    body = questions_to_csv(container.workflow.visible_questions(current_user))
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": "attachment; filename=questions.csv"},
    )


@router.get("/export/json")
def export_json(
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    body = container.question_store.export_json(container.workflow.visible_questions(current_user))
    return Response(
        content=body,
        media_type="application/json",
        headers={"Content-Disposition": "attachment; filename=questions-backup.json"},
    )


@router.post("/import", response_model=ImportResponse, status_code=status.HTTP_201_CREATED)
def import_csv(
    file: UploadFile = File(...),
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    """Import a CSV export; every row becomes a draft question."""
    if file.filename and not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be a CSV")
    try:
        text = file.file.read().decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV must be UTF-8 encoded")
    ids = container.workflow.import_questions(text, current_user)
    return ImportResponse(imported=len(ids), question_ids=ids)


@router.get("/{question_id}", response_model=Question)
def get_question(
    question_id: str,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    q = container.workflow.get(question_id)
    if not can_view_question(current_user, q):
        raise PermissionDenied("You do not have access to this question")
    return q


@router.post("", response_model=Question, status_code=status.HTTP_201_CREATED)
def create_question(
    body: QuestionCreateRequest,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    content = QuestionContent.model_validate(body.model_dump(exclude={"status"}))
    question_id = container.workflow.submit_question(content, current_user, status=body.status)
    return container.workflow.get(question_id)


@router.patch("/{question_id}", response_model=Question)
def edit_question(
    question_id: str,
    body: QuestionPatch,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.workflow.edit_question(question_id, body, current_user)


@router.post("/{question_id}/submit", response_model=Question)
def submit_for_review(
    question_id: str,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.workflow.submit_for_review(question_id, current_user)


@router.post("/{question_id}/assign", response_model=Question)
def assign_reviewers(
    question_id: str,
    body: AssignReviewersRequest,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.workflow.assign_reviewers(question_id, body.reviewer1_id, body.reviewer2_id, current_user)


@router.post("/{question_id}/review", response_model=Question)
def decide_review(
    question_id: str,
    body: ReviewDecisionRequest,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.workflow.decide_review(
        question_id,
        body.decision,
        body.feedback,
        current_user,
        reviewer_comment=body.reviewer_comment,
        edits=body.edits,
    )


@router.delete("/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_question(
    question_id: str,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    container.workflow.delete_question(question_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
