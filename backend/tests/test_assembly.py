"""Tests for exam assembly: approved-only selection, total points, draft-only edits, finalize/publish."""
import threading

import pytest

from qbank.errors import NotFoundError, PermissionDenied, StateError, ValidationError
from qbank.schemas.exam_book import ExamBookForm
from qbank.services.assembly import ExamAssembly
from qbank.storage import ExamBookStore, FileBlobStore


def _form(**overrides) -> ExamBookForm:
    data = dict(
        title="Cardiology Block Final",
        description="End-of-block summative exam",
        subject="Cardiology",
        duration=90,
        instructions="Choose the single best answer.",
        semester="Fall",
        academic_year="2024/2025",
    )
    data.update(overrides)
    return ExamBookForm(**data)


@pytest.fixture
def coordinator(make_user):
    return make_user("coordinator")


def test_create_exam_book(assembly, approved_question, coordinator):
    q1, q2 = approved_question(), approved_question(topic="Heart failure")
    book = assembly.get(assembly.create_exam_book(_form(), [q1, q2, q1], coordinator))
    assert book.questions == [q1, q2]
    assert book.total_points == 2
    assert book.status == "draft"
    assert book.created_by == coordinator.id


def test_create_requires_coordinator_or_admin(assembly, approved_question, make_user):
    qid = approved_question()
    with pytest.raises(PermissionDenied):
        assembly.create_exam_book(_form(), [qid], make_user("lecturer"))
    assert assembly.create_exam_book(_form(), [qid], make_user("admin"))


def test_create_validates_every_field(assembly, coordinator):
    form = _form(title=" ", description="", subject="", semester="", academic_year="", duration=20)
    with pytest.raises(ValidationError) as exc:
        assembly.create_exam_book(form, [], coordinator)
    assert set(exc.value.errors) == {
        "title", "description", "subject", "semester", "academicYear", "duration", "questions",
    }
    assert assembly.exam_books == []


def test_create_rejects_unapproved_question(assembly, workflow, approved_question, make_user, coordinator, question_content):
    approved = approved_question()
    submitted = workflow.submit_question(question_content(), make_user("lecturer"), status="submitted")
    with pytest.raises(ValidationError) as exc:
        assembly.create_exam_book(_form(), [approved, submitted], coordinator)
    assert submitted in exc.value.errors["questions"]
    assert approved not in exc.value.errors["questions"]


def test_create_rejects_unknown_question(assembly, coordinator):
    with pytest.raises(ValidationError) as exc:
        assembly.create_exam_book(_form(), ["q_missing"], coordinator)
    assert "q_missing" in exc.value.errors["questions"]


def test_update_recomputes_total_points(assembly, approved_question, coordinator):
    q1, q2, q3 = approved_question(), approved_question(), approved_question()
    book_id = assembly.create_exam_book(_form(), [q1], coordinator)
    book = assembly.update_exam_book(book_id, _form(title="Renamed"), [q3, q2, q1], coordinator)
    assert book.title == "Renamed"
    assert book.questions == [q3, q2, q1]
    assert book.total_points == 3
    assert book.updated_at is not None


def test_update_by_other_lecturer_denied(assembly, approved_question, coordinator, make_user):
    qid = approved_question()
    book_id = assembly.create_exam_book(_form(), [qid], coordinator)
    with pytest.raises(PermissionDenied):
        assembly.update_exam_book(book_id, _form(title="Hijacked"), [qid], make_user("lecturer"))
    assert assembly.get(book_id).title == "Cardiology Block Final"


def test_finalize_then_publish(assembly, approved_question, coordinator):
    book_id = assembly.create_exam_book(_form(), [approved_question()], coordinator)
    assert assembly.finalize_exam_book(book_id, coordinator).status == "finalized"
    assert assembly.publish_exam_book(book_id, coordinator).status == "published"


def test_finalize_twice_is_state_error(assembly, approved_question, coordinator):
    book_id = assembly.create_exam_book(_form(), [approved_question()], coordinator)
    finalized = assembly.finalize_exam_book(book_id, coordinator)
    with pytest.raises(StateError):
        assembly.finalize_exam_book(book_id, coordinator)
    assert assembly.get(book_id) == finalized


def test_publish_requires_finalized(assembly, approved_question, coordinator):
    book_id = assembly.create_exam_book(_form(), [approved_question()], coordinator)
    with pytest.raises(StateError):
        assembly.publish_exam_book(book_id, coordinator)


def test_finalized_book_cannot_be_edited(assembly, approved_question, coordinator, make_user):
    qid = approved_question()
    book_id = assembly.create_exam_book(_form(), [qid], coordinator)
    assembly.finalize_exam_book(book_id, coordinator)
    with pytest.raises(PermissionDenied):
        assembly.update_exam_book(book_id, _form(instructions="New"), [qid], coordinator)
    with pytest.raises(PermissionDenied):
        assembly.update_exam_book(book_id, _form(instructions="New"), [qid], make_user("admin"))


def test_finalize_by_stranger_denied(assembly, approved_question, coordinator, make_user):
    book_id = assembly.create_exam_book(_form(), [approved_question()], coordinator)
    with pytest.raises(PermissionDenied):
        assembly.finalize_exam_book(book_id, make_user("coordinator"))


def test_delete_finalized_book(assembly, approved_question, coordinator):
    book_id = assembly.create_exam_book(_form(), [approved_question()], coordinator)
    assembly.finalize_exam_book(book_id, coordinator)
    assembly.delete_exam_book(book_id, coordinator)
    with pytest.raises(NotFoundError):
        assembly.get(book_id)


def test_deleted_question_stays_as_dangling_reference(assembly, workflow, approved_question, coordinator, make_user):
    q1, q2 = approved_question(), approved_question()
    book_id = assembly.create_exam_book(_form(), [q1, q2], coordinator)
    workflow.delete_question(q1, make_user("admin"))
    book = assembly.get(book_id)
    assert book.questions == [q1, q2]
    resolved = assembly.resolve_questions(book)
    assert resolved[0] == (q1, None)
    assert resolved[1][1].id == q2


def test_visible_exam_books_search_and_subject(assembly, approved_question, coordinator, make_user):
    qid = approved_question()
    other = make_user("coordinator")
    admin = make_user("admin")
    mine = assembly.create_exam_book(_form(), [qid], coordinator)
    assembly.create_exam_book(_form(title="Neuro midterm", subject="Neurology"), [qid], other)
    assert [b.id for b in assembly.visible_exam_books(coordinator)] == [mine]
    assert len(assembly.visible_exam_books(admin)) == 2
    assert [b.title for b in assembly.visible_exam_books(admin, search="NEURO")] == ["Neuro midterm"]
    assert [b.id for b in assembly.visible_exam_books(admin, subject="Cardiology")] == [mine]
    assert assembly.subjects(admin) == ["Cardiology", "Neurology"]
    with pytest.raises(PermissionDenied):
        assembly.get_for(coordinator, assembly.visible_exam_books(other)[0].id)


def test_books_survive_reload(blobs, assembly, workflow, approved_question, coordinator):
    book_id = assembly.create_exam_book(_form(), [approved_question()], coordinator)
    reloaded = ExamAssembly(ExamBookStore(blobs), workflow)
    assert reloaded.get(book_id) == assembly.get(book_id)


def test_concurrent_creates_are_not_lost(tmp_path, workflow, approved_question, coordinator):
    qid = approved_question()
    books = ExamAssembly(ExamBookStore(FileBlobStore(tmp_path)), workflow)
    errors = []

    def create_many(n):
        try:
            for i in range(5):
                books.create_exam_book(_form(title=f"Quiz {n}-{i}"), [qid], coordinator)
        except Exception as e:  # surfaced by the assertion below
            errors.append(e)

    threads = [threading.Thread(target=create_many, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
    assert len(books.exam_books) == 40
    reloaded = ExamAssembly(ExamBookStore(FileBlobStore(tmp_path)), workflow)
    assert {b.title for b in reloaded.exam_books} == {f"Quiz {n}-{i}" for n in range(8) for i in range(5)}
