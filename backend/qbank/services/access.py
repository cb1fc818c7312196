"""Role & object access predicates. Pure functions; a None user is denied everything."""

from qbank.schemas.exam_book import ExamBook
from qbank.schemas.question import Question
from qbank.schemas.user import UserProfile
from qbank.services.roles import (
    ADMIN, COORDINATOR, REVIEWER, RESTRICTED_LECTURER,
)

EDITABLE_BY_AUTHOR = ("draft", "needs-revision")


def has_role(user: UserProfile | None, role_type: str) -> bool:
    if user is None:
        return False
    return any(r.type == role_type for r in user.roles)


def has_permission(user: UserProfile | None, permission: str) -> bool:
    if user is None:
        return False
    return any(permission in r.permissions for r in user.roles)


def is_verified_and_functional(user: UserProfile | None) -> bool:
    if user is None or not user.is_verified:
        return False
    types = user.role_types
    return bool(types) and types != {RESTRICTED_LECTURER}


def is_admin(user: UserProfile | None) -> bool:
    return has_role(user, ADMIN)


def is_author(user: UserProfile | None, question: Question | None) -> bool:
    return bool(user and question and question.author_id == user.id)


def is_assigned_reviewer(user: UserProfile | None, question: Question | None) -> bool:
    return bool(user and question and user.id in question.assigned_reviewer_ids)


def is_creator(user: UserProfile | None, exam_book: ExamBook | None) -> bool:
    return bool(user and exam_book and exam_book.created_by == user.id)


# --- exam books ---

def can_view_exam_book(user: UserProfile | None, exam_book: ExamBook | None) -> bool:
    if user is None or exam_book is None:
        return False
    return is_admin(user) or is_creator(user, exam_book)


def can_edit_exam_book(user: UserProfile | None, exam_book: ExamBook | None) -> bool:
    if user is None or exam_book is None or exam_book.status != "draft":
        return False
    return is_admin(user) or is_creator(user, exam_book)


def can_manage_exam_book(user: UserProfile | None, exam_book: ExamBook | None) -> bool:
    """Finalize, publish and delete: creator or admin, whatever the status."""
    if user is None or exam_book is None:
        return False
    return is_admin(user) or is_creator(user, exam_book)


def can_create_exam_book(user: UserProfile | None) -> bool:
    return has_role(user, COORDINATOR) or is_admin(user)


# --- questions ---

def can_assign_reviewers(user: UserProfile | None) -> bool:
    return is_admin(user)


def is_review_participant(user: UserProfile | None, question: Question | None) -> bool:
    """One of the two assigned reviewers, or an admin; ignores status."""
    return is_assigned_reviewer(user, question) or (question is not None and is_admin(user))


def can_decide_review(user: UserProfile | None, question: Question | None) -> bool:
    if question is None or question.status != "under-review":
        return False
    return is_review_participant(user, question)


def can_edit_question(user: UserProfile | None, question: Question | None) -> bool:
    if user is None or question is None:
        return False
    if is_author(user, question) and question.status in EDITABLE_BY_AUTHOR:
        return True
    return question.status == "under-review" and is_assigned_reviewer(user, question)


def can_delete_question(user: UserProfile | None, question: Question | None) -> bool:
    if user is None or question is None:
        return False
    if is_admin(user):
        return True
    return is_author(user, question) and question.status in EDITABLE_BY_AUTHOR


def can_import_questions(user: UserProfile | None) -> bool:
    return is_admin(user) or has_role(user, COORDINATOR)


def can_view_question(user: UserProfile | None, question: Question | None) -> bool:
    """Plain lecturers (and restricted accounts) see approved questions and their own; other roles see all."""
    if user is None or question is None:
        return False
    if user.role_types & {ADMIN, COORDINATOR, REVIEWER}:
        return True
    return question.status == "approved" or is_author(user, question)
