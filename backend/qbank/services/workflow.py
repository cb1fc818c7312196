"""
Question workflow: owns the question status state machine and its guards.

    draft          --submit-->            submitted
    needs-revision --submit-->            submitted       (reviewer assignment is cleared)
    submitted      --assign reviewers-->  under-review    (admin, two distinct verified reviewers)
    under-review   --approve/reject/revision--> approved | rejected | needs-revision
                                                          (one of the two assigned reviewers, or admin)

Every mutation checks permissions and validates before touching anything, builds the new
collection, persists it, and only then swaps it in. A failed save raises StorageError and
leaves the in-memory collection as it was. Mutations are serialized by a per-engine lock.
"""
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from qbank.errors import NotFoundError, PermissionDenied, StateError, StorageError, ValidationError
from qbank.schemas.question import Question, QuestionContent, QuestionPatch
from qbank.schemas.user import UserProfile
from qbank.services.access import (
    EDITABLE_BY_AUTHOR,
    can_assign_reviewers,
    can_decide_review,
    can_delete_question,
    can_edit_question,
    can_import_questions,
    can_view_question,
    has_role,
    is_author,
    is_review_participant,
)
from qbank.services.csv_import import parse_questions_csv
from qbank.services.roles import REVIEWER
from qbank.storage import QuestionStore

logger = logging.getLogger(__name__)

REQUIRED_OPTION_COUNT = 5

DECISION_STATUS = {
    "approve": "approved",
    "reject": "rejected",
    "revision": "needs-revision",
}

_ASSIGNMENT_FIELDS = ("reviewer_id", "reviewer_name", "reviewer1_id", "reviewer1", "reviewer2_id", "reviewer2")

# Optional content fields a patch may set to null
CLEARABLE_FIELDS = frozenset({"correct_answer", "explanation", "disease", "references", "additional_picture_link"})


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_question_id() -> str:
    return f"q_{uuid.uuid4().hex}"


def validate_question_content(content: QuestionContent) -> dict[str, str]:
    """Every violated mandatory field with its message; empty dict when valid."""
    errors: dict[str, str] = {}
    if not content.clinical_vignette.strip():
        errors["clinicalVignette"] = "Clinical vignette is required"
    if not content.lead_question.strip():
        errors["leadQuestion"] = "Lead question is required"
    if not content.subject.strip():
        errors["subject"] = "Subject is required"
    if not content.topic.strip():
        errors["topic"] = "Topic is required"
    if not any(o.strip() for o in content.learning_objectives):
        errors["learningObjectives"] = "At least one learning objective is required"
    if content.type == "multiple-choice":
        filled = [o.strip() for o in content.options if o.strip()]
        if len(content.options) != REQUIRED_OPTION_COUNT or len(filled) != REQUIRED_OPTION_COUNT:
            errors["options"] = f"All {REQUIRED_OPTION_COUNT} options are required (1 correct answer + 4 distractors)"
        answer = (content.correct_answer or "").strip()
        if not answer:
            errors["correctAnswer"] = "Correct answer must be selected"
        elif answer not in filled:
            errors["correctAnswer"] = "Correct answer must be one of the options"
    return errors


def _content_fields(content: QuestionContent) -> dict:
    data = {name: getattr(content, name) for name in QuestionContent.model_fields}
    data["options"] = [o.strip() for o in data["options"]]
    if data["correct_answer"] is not None:
        data["correct_answer"] = data["correct_answer"].strip()
    data["tags"] = list(dict.fromkeys(t.strip() for t in data["tags"] if t.strip()))
    data["learning_objectives"] = [o.strip() for o in data["learning_objectives"] if o.strip()]
    return data


def _coerce_patch(patch: QuestionPatch | dict) -> QuestionPatch:
    if isinstance(patch, QuestionPatch):
        return patch
    try:
        return QuestionPatch.model_validate(patch)
    except PydanticValidationError as e:
        raise ValidationError(
            {".".join(str(p) for p in err["loc"]) or "patch": err["msg"] for err in e.errors()}
        ) from e


class QuestionWorkflow:
    """Question collection plus the transitions allowed on it.

    Every mutation holds the engine lock from reading the current collection until the new one
    is swapped in, so concurrent requests never build on the same stale list.
    """

    def __init__(self, store: QuestionStore, resolve_user: Callable[[str], UserProfile | None]):
        self.store = store
        self._resolve_user = resolve_user
        self._lock = threading.Lock()
        self.load_result = store.load()
        if not self.load_result.success:
            logger.error("Question store unusable (%s); starting with an empty bank", self.load_result.error)
        self._questions: list[Question] = list(self.load_result.data)

    # --- reads ---

    @property
    def questions(self) -> list[Question]:
        return list(self._questions)

    def find(self, question_id: str) -> Question | None:
        for q in self._questions:
            if q.id == question_id:
                return q
        return None

    def get(self, question_id: str) -> Question:
        q = self.find(question_id)
        if q is None:
            raise NotFoundError(f"Question not found: {question_id}")
        return q

    def by_author(self, author_id: str) -> list[Question]:
        return [q for q in self._questions if q.author_id == author_id]

    def by_status(self, status: str) -> list[Question]:
        return [q for q in self._questions if q.status == status]

    def pending_assignment(self) -> list[Question]:
        """Submitted questions nobody has been assigned to yet."""
        return [q for q in self._questions if q.status == "submitted" and not q.assigned_reviewer_ids]

    def assigned_to(self, reviewer_id: str) -> list[Question]:
        return [
            q for q in self._questions
            if q.status == "under-review" and reviewer_id in q.assigned_reviewer_ids
        ]

    def visible_questions(
        self,
        actor: UserProfile | None,
        search: str | None = None,
        subject: str | None = None,
        status: str | None = None,
    ) -> list[Question]:
        """Questions the actor may see. `search` matches subject, disease or topic, case-insensitively."""
        term = (search or "").strip().lower()
        questions = [q for q in self._questions if can_view_question(actor, q)]
        if term:
            questions = [
                q for q in questions
                if term in (q.subject or "").lower()
                or term in (q.disease or "").lower()
                or term in (q.topic or "").lower()
            ]
        if subject:
            questions = [q for q in questions if q.subject == subject]
        if status:
            questions = [q for q in questions if q.status == status]
        return questions

    def stats_for(self, user: UserProfile) -> dict[str, int]:
        """Dashboard counters: the user's own questions, their review queue and bank totals."""
        own = self.by_author(user.id)
        return {
            "submitted": len(own),
            "approved": sum(1 for q in own if q.status == "approved"),
            "pending_review": len(self.assigned_to(user.id)),
            "total_questions": len(self._questions),
            "approved_questions": len(self.by_status("approved")),
        }

    # --- persistence ---

    def _commit(self, questions: list[Question]) -> None:
        """Persist then swap. Callers hold self._lock."""
        result = self.store.save(questions)
        if not result.success:
            raise StorageError(result.error or "Failed to save questions")
        self._questions = questions

    def _replace(self, updated: Question) -> None:
        self._commit([updated if q.id == updated.id else q for q in self._questions])

    # --- transitions ---

    def submit_question(self, content: QuestionContent, author: UserProfile | None, status: str = "draft") -> str:
        """Create a question as draft or submitted. Returns the new id."""
        if author is None:
            raise PermissionDenied("Sign in to submit questions")
        errors = validate_question_content(content)
        if status not in ("draft", "submitted"):
            errors["status"] = "Status must be draft or submitted"
        if errors:
            raise ValidationError(errors)
        now = now_iso()
        question = Question(
            **_content_fields(content),
            id=new_question_id(),
            author_id=author.id,
            author_name=author.full_name,
            status=status,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._commit([question, *self._questions])
        logger.info("Question %s created by %s as %s", question.id, author.id, status)
        return question.id

    def submit_for_review(self, question_id: str, actor: UserProfile | None) -> Question:
        """Author sends a draft or a revised question (back) to the review queue."""
        with self._lock:
            q = self.get(question_id)
            if not is_author(actor, q):
                raise PermissionDenied("Only the author can submit this question")
            if q.status not in EDITABLE_BY_AUTHOR:
                raise StateError(
                    f"Question {q.id} is {q.status}; only draft or needs-revision questions can be submitted"
                )
            errors = validate_question_content(q)
            if errors:
                raise ValidationError(errors)
            updates = {name: None for name in _ASSIGNMENT_FIELDS}
            updates.update(status="submitted", updated_at=now_iso())
            updated = q.model_copy(update=updates)
            self._replace(updated)
        logger.info("Question %s submitted for review (was %s)", q.id, q.status)
        return updated

    def assign_reviewers(
        self, question_id: str, reviewer1_id: str, reviewer2_id: str, actor: UserProfile | None
    ) -> Question:
        if not can_assign_reviewers(actor):
            logger.warning("Reviewer assignment denied for %s", getattr(actor, "id", None))
            raise PermissionDenied("Only administrators can assign reviewers to questions")
        errors: dict[str, str] = {}
        resolved: dict[str, UserProfile] = {}
        for slot, rid in (("reviewer1Id", reviewer1_id), ("reviewer2Id", reviewer2_id)):
            if not rid:
                errors[slot] = "Reviewer is required"
                continue
            user = self._resolve_user(rid)
            if user is None or not user.is_verified or not has_role(user, REVIEWER):
                errors[slot] = f"{rid} is not a verified reviewer"
            else:
                resolved[slot] = user
        if reviewer1_id and reviewer1_id == reviewer2_id:
            errors["reviewers"] = "Please select two different reviewers"
        with self._lock:
            q = self.get(question_id)
            if q.status != "submitted":
                raise StateError(f"Question {q.id} is {q.status}; only submitted questions can be assigned")
            if errors:
                raise ValidationError(errors)
            first, second = resolved["reviewer1Id"], resolved["reviewer2Id"]
            updated = q.model_copy(update={
                "status": "under-review",
                "reviewer_id": first.id,
                "reviewer_name": first.full_name,
                "reviewer1_id": first.id,
                "reviewer1": first.full_name,
                "reviewer2_id": second.id,
                "reviewer2": second.full_name,
                "updated_at": now_iso(),
            })
            self._replace(updated)
        logger.info("Question %s assigned to %s and %s", q.id, first.id, second.id)
        return updated

    def decide_review(
        self,
        question_id: str,
        decision: str,
        feedback: str | None,
        actor: UserProfile | None,
        *,
        reviewer_comment: str | None = None,
        edits: QuestionPatch | dict | None = None,
    ) -> Question:
        """Apply a reviewer decision (approve | reject | revision), optionally with field edits."""
        with self._lock:
            q = self.get(question_id)
            if not is_review_participant(actor, q):
                logger.warning("Review decision on %s denied for %s", q.id, getattr(actor, "id", None))
                raise PermissionDenied("Only the assigned reviewers or an administrator can review this question")
            if not can_decide_review(actor, q):
                raise StateError(f"Question {q.id} is {q.status}; only questions under review can be decided")
            if decision not in DECISION_STATUS:
                raise ValidationError({"decision": "Decision must be approve, reject or revision"})
            base = q
            if edits is not None:
                base = self._patched(q, _coerce_patch(edits))
            updates = {
                "status": DECISION_STATUS[decision],
                "feedback": (feedback or "").strip() or None,
                "reviewer_id": actor.id,
                "reviewer_name": actor.full_name,
                "updated_at": now_iso(),
            }
            if reviewer_comment is not None:
                updates["reviewer_comment"] = reviewer_comment.strip() or None
            updated = base.model_copy(update=updates)
            self._replace(updated)
        logger.info("Question %s %s by %s", q.id, updated.status, actor.id)
        return updated

    def _patched(self, q: Question, patch: QuestionPatch) -> Question:
        """Apply the fields present in the patch. An explicit null clears an optional field."""
        changes = patch.model_dump(exclude_unset=True)
        errors = {
            to_camel(name): "This field cannot be cleared"
            for name, value in changes.items()
            if value is None and name not in CLEARABLE_FIELDS
        }
        if errors:
            raise ValidationError(errors)
        merged = QuestionContent.model_validate({**_content_fields(q), **changes})
        errors = validate_question_content(merged)
        if errors:
            raise ValidationError(errors)
        return q.model_copy(update=_content_fields(merged))

    def edit_question(self, question_id: str, patch: QuestionPatch | dict, actor: UserProfile | None) -> Question:
        patch = _coerce_patch(patch)
        with self._lock:
            q = self.get(question_id)
            if not can_edit_question(actor, q):
                raise PermissionDenied(f"Question {q.id} cannot be edited by this user while {q.status}")
            updated = self._patched(q, patch).model_copy(update={"updated_at": now_iso()})
            self._replace(updated)
        logger.info("Question %s edited by %s", q.id, actor.id)
        return updated

    def delete_question(self, question_id: str, actor: UserProfile | None) -> None:
        """Remove a question. Exam books still referencing it keep the dangling id."""
        with self._lock:
            q = self.get(question_id)
            if not can_delete_question(actor, q):
                raise PermissionDenied(f"Question {q.id} cannot be deleted by this user while {q.status}")
            self._commit([x for x in self._questions if x.id != question_id])
        logger.info("Question %s deleted by %s", q.id, actor.id)

    def import_questions(self, csv_text: str, actor: UserProfile | None) -> list[str]:
        """Add every CSV row as a draft question. Ids already in the bank are replaced by fresh ones."""
        if not can_import_questions(actor):
            raise PermissionDenied("Only administrators and coordinators can import questions")
        parsed = parse_questions_csv(csv_text, created_at=now_iso())
        imported: list[Question] = []
        with self._lock:
            taken = {q.id for q in self._questions}
            for q in parsed:
                if q.id in taken:
                    q = q.model_copy(update={"id": new_question_id()})
                taken.add(q.id)
                imported.append(q)
            if imported:
                self._commit([*imported, *self._questions])
        logger.info("Imported %s questions from CSV (by %s)", len(imported), actor.id)
        return [q.id for q in imported]
