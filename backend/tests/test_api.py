"""
API tests: auth, users, questions and exam books through FastAPI TestClient.
The app gets a container built on an in-memory sqlite identity store and an in-memory blob store.
Requires: fastapi, httpx, python-multipart.
"""
import uuid

import pytest
from fastapi.testclient import TestClient

from qbank.container import build_services
from qbank.database import make_engine
from qbank.main import create_app
from qbank.storage import MemoryBlobStore

QUESTION_BODY = {
    "clinicalVignette": "A 24-year-old woman has palpitations, weight loss and a fine tremor.",
    "leadQuestion": "Which test best confirms the diagnosis?",
    "subject": "Endocrinology",
    "topic": "Thyroid",
    "options": ["TSH and free T4", "Serum cortisol", "HbA1c", "Prolactin", "Calcitonin"],
    "correctAnswer": "TSH and free T4",
    "explanation": "Suppressed TSH with raised free T4 confirms hyperthyroidism.",
    "learningObjectives": ["Order thyroid function tests"],
    "pathomechanism": "metabolism",
    "aspect": "knowledge",
}

EXAM_BOOK_BODY = {
    "title": "Endocrine Block Final",
    "description": "Summative exam",
    "subject": "Endocrinology",
    "duration": 60,
    "instructions": "Single best answer.",
    "semester": "Spring",
    "academicYear": "2024/2025",
}


@pytest.fixture
def container():
    engine = make_engine("sqlite://")
    yield build_services(engine, MemoryBlobStore())
    engine.dispose()


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as c:
        yield c


@pytest.fixture
def login_as(client, container):
    """Register an account, give it roles directly in the identity store, log in; returns (user_id, headers)."""

    def _login(*roles: str, verified: bool = True):
        email = f"api-{uuid.uuid4().hex[:8]}@faculty.example.edu"
        r = client.post("/auth/register", json={
            "email": email, "password": "testpass123", "first_name": "Api", "last_name": roles[0] if roles else "User",
        })
        assert r.status_code == 201, r.text
        user_id = r.json()["id"]
        container.identity.update_user_roles(user_id, roles, verified)
        r = client.post("/auth/login", json={"email": email, "password": "testpass123"})
        assert r.status_code == 200, r.text
        return user_id, {"Authorization": f"Bearer {r.json()['access_token']}"}

    return _login


def _approved_question(client, login_as) -> str:
    _, author = login_as("lecturer")
    _, admin = login_as("admin")
    r1_id, r1 = login_as("reviewer")
    r2_id, _ = login_as("reviewer")
    qid = client.post("/questions", json={**QUESTION_BODY, "status": "submitted"}, headers=author).json()["id"]
    r = client.post(f"/questions/{qid}/assign", json={"reviewer1Id": r1_id, "reviewer2Id": r2_id}, headers=admin)
    assert r.status_code == 200, r.text
    r = client.post(f"/questions/{qid}/review", json={"decision": "approve"}, headers=r1)
    assert r.status_code == 200, r.text
    return qid


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.json()["storage"]["is_healthy"] is True


def test_register_login_me(client):
    body = {"email": "fresh@faculty.example.edu", "password": "testpass123", "first_name": "F", "last_name": "R"}
    r = client.post("/auth/register", json=body)
    assert r.status_code == 201
    assert [role["type"] for role in r.json()["roles"]] == ["restricted-lecturer"]
    assert client.post("/auth/register", json=body).status_code == 400
    assert client.post("/auth/login", json={"email": body["email"], "password": "nope-nope"}).status_code == 401
    token = client.post("/auth/login", json={"email": body["email"], "password": "testpass123"}).json()["access_token"]
    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == body["email"]


def test_register_short_password_is_422(client):
    r = client.post("/auth/register", json={
        "email": "short@faculty.example.edu", "password": "short", "first_name": "S", "last_name": "P",
    })
    assert r.status_code == 422


def test_requires_token(client):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/questions").status_code == 401
    assert client.get("/questions", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_user_admin_routes(client, login_as):
    target_id, _ = login_as(verified=False)
    _, lecturer = login_as("lecturer")
    _, admin = login_as("admin")
    assert client.get("/users", headers=lecturer).status_code == 403
    r = client.get("/users", headers=admin)
    assert r.status_code == 200
    assert r.json()["total"] == 3
    r = client.post(f"/users/{target_id}/verify", headers=admin)
    assert r.json()["is_verified"] is True
    r = client.post(f"/users/{target_id}/roles/reviewer", headers=admin)
    assert {role["type"] for role in r.json()["roles"]} == {"lecturer", "reviewer"}
    r = client.get("/users/reviewers", headers=admin)
    assert [u["id"] for u in r.json()["items"]] == [target_id]
    client.delete(f"/users/{target_id}/roles/reviewer", headers=admin)
    r = client.delete(f"/users/{target_id}/roles/lecturer", headers=admin)
    assert [role["type"] for role in r.json()["roles"]] == ["restricted-lecturer"]
    assert client.post(f"/users/{target_id}/roles/dean", headers=admin).status_code == 422


def test_update_own_profile(client, login_as):
    _, headers = login_as("lecturer")
    r = client.patch("/users/me", json={"department": "Cardiology"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["department"] == "Cardiology"


def test_create_question_validation_lists_fields(client, login_as):
    _, author = login_as("lecturer")
    body = {**QUESTION_BODY, "options": QUESTION_BODY["options"][:4], "topic": ""}
    r = client.post("/questions", json=body, headers=author)
    assert r.status_code == 422
    assert set(r.json()["errors"]) == {"options", "topic"}


def test_question_review_cycle(client, login_as):
    author_id, author = login_as("lecturer")
    _, admin = login_as("admin")
    r1_id, r1 = login_as("reviewer")
    r2_id, _ = login_as("reviewer")
    _, outsider = login_as("reviewer")

    r = client.post("/questions", json=QUESTION_BODY, headers=author)
    assert r.status_code == 201
    q = r.json()
    assert q["status"] == "draft"
    assert q["authorId"] == author_id
    assert q["learningObjectives"] == ["Order thyroid function tests"]
    qid = q["id"]

    assert client.post(f"/questions/{qid}/submit", headers=author).json()["status"] == "submitted"
    assert [x["id"] for x in client.get("/questions/pending-assignment", headers=admin).json()["items"]] == [qid]
    r = client.post(f"/questions/{qid}/assign", json={"reviewer1Id": r1_id, "reviewer2Id": r1_id}, headers=admin)
    assert r.status_code == 422
    r = client.post(f"/questions/{qid}/assign", json={"reviewer1Id": r1_id, "reviewer2Id": r2_id}, headers=author)
    assert r.status_code == 403
    r = client.post(f"/questions/{qid}/assign", json={"reviewer1Id": r1_id, "reviewer2Id": r2_id}, headers=admin)
    assert r.json()["status"] == "under-review"

    assert [x["id"] for x in client.get("/questions/assigned", headers=r1).json()["items"]] == [qid]
    assert client.post(f"/questions/{qid}/review", json={"decision": "approve"}, headers=outsider).status_code == 403
    r = client.post(f"/questions/{qid}/review", json={"decision": "revision", "feedback": "Add references"}, headers=r1)
    assert r.json()["status"] == "needs-revision"

    r = client.patch(f"/questions/{qid}", json={"references": "ATA guidelines"}, headers=author)
    assert r.json()["references"] == "ATA guidelines"
    r = client.post(f"/questions/{qid}/submit", headers=author)
    assert r.json()["reviewer1Id"] is None

    assert client.post(f"/questions/{qid}/review", json={"decision": "approve"}, headers=r1).status_code == 403
    client.post(f"/questions/{qid}/assign", json={"reviewer1Id": r1_id, "reviewer2Id": r2_id}, headers=admin)
    assert client.post(f"/questions/{qid}/review", json={"decision": "approve"}, headers=r1).status_code == 200
    assert client.post(f"/questions/{qid}/review", json={"decision": "approve"}, headers=r1).status_code == 409


def test_question_visibility_and_delete(client, login_as):
    _, author = login_as("lecturer")
    _, other = login_as("lecturer")
    qid = client.post("/questions", json=QUESTION_BODY, headers=author).json()["id"]
    assert client.get(f"/questions/{qid}", headers=other).status_code == 403
    assert client.get("/questions", headers=other).json()["total"] == 0
    assert client.get("/questions?mine=true", headers=author).json()["total"] == 1
    assert client.get("/questions/q_missing", headers=author).status_code == 404
    assert client.delete(f"/questions/{qid}", headers=other).status_code == 403
    assert client.delete(f"/questions/{qid}", headers=author).status_code == 204
    assert client.get(f"/questions/{qid}", headers=author).status_code == 404


def test_question_search_and_filters(client, login_as):
    _, author = login_as("lecturer")
    _, admin = login_as("admin")
    thyroid = client.post("/questions", json=QUESTION_BODY, headers=author).json()["id"]
    stroke = client.post("/questions", json={
        **QUESTION_BODY, "subject": "Neurology", "topic": "Stroke", "disease": "Ischemic stroke", "status": "submitted",
    }, headers=author).json()["id"]

    def ids(query):
        r = client.get(f"/questions{query}", headers=admin)
        assert r.status_code == 200, r.text
        return [q["id"] for q in r.json()["items"]]

    assert ids("?search=ISCHEMIC") == [stroke]
    assert ids("?subject=Endocrinology") == [thyroid]
    assert ids("?search=thyroid&status=draft") == [thyroid]
    assert ids("?search=thyroid&status=submitted") == []
    assert ids("?search=") == [stroke, thyroid]
    assert client.get("/questions?status=archived", headers=admin).status_code == 422


def test_patch_null_clears_optional_field(client, login_as):
    _, author = login_as("lecturer")
    qid = client.post("/questions", json=QUESTION_BODY, headers=author).json()["id"]
    r = client.patch(f"/questions/{qid}", json={"explanation": None}, headers=author)
    assert r.status_code == 200, r.text
    assert r.json()["explanation"] is None
    assert r.json()["topic"] == "Thyroid"
    r = client.patch(f"/questions/{qid}", json={"topic": None}, headers=author)
    assert r.status_code == 422
    assert "topic" in r.json()["errors"]


def test_dashboard(client, login_as):
    qid = _approved_question(client, login_as)
    _, author = login_as("lecturer")
    _, coordinator = login_as("coordinator")
    client.post("/questions", json=QUESTION_BODY, headers=author)
    client.post("/exam-books", json={**EXAM_BOOK_BODY, "questionIds": [qid]}, headers=coordinator)

    assert client.get("/dashboard").status_code == 401
    assert client.get("/dashboard", headers=author).json() == {
        "isVerified": True,
        "submitted": 1,
        "approved": 0,
        "pendingReview": 0,
        "totalQuestions": 2,
        "approvedQuestions": 1,
        "totalExams": 0,
    }
    assert client.get("/dashboard", headers=coordinator).json()["totalExams"] == 1

def test_question_csv_import_and_export(client, login_as):
    _, coordinator = login_as("coordinator")
    _, lecturer = login_as("lecturer")
    csv_text = (
        "ID,Topic,Clinical Vignette,Lead Question,Correct answer,Distractor Option 1,Learning Objective\n"
        'n-1,Kidney injury,"Oliguria, rising creatinine.",Next step?,Renal ultrasound,CT,Assess AKI\n'
    )
    files = {"file": ("bank.csv", csv_text.encode("utf-8"), "text/csv")}
    assert client.post("/questions/import", files=files, headers=lecturer).status_code == 403
    r = client.post("/questions/import", files=files, headers=coordinator)
    assert r.status_code == 201
    assert r.json() == {"imported": 1, "questionIds": ["n-1"]}
    q = client.get("/questions/n-1", headers=coordinator).json()
    assert q["subject"] == "Nephrology"
    assert q["clinicalVignette"] == "Oliguria, rising creatinine."

    r = client.get("/questions/export/csv", headers=coordinator)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert '"n-1","Kidney injury"' in r.text
    r = client.get("/questions/export/json", headers=coordinator)
    assert r.json()["questions"][0]["id"] == "n-1"


def test_exam_book_lifecycle(client, login_as):
    qid = _approved_question(client, login_as)
    _, coordinator = login_as("coordinator")
    _, lecturer = login_as("lecturer")

    assert client.post("/exam-books", json={**EXAM_BOOK_BODY, "questionIds": [qid]}, headers=lecturer).status_code == 403
    r = client.post("/exam-books", json={**EXAM_BOOK_BODY, "questionIds": [qid, "q_unknown"]}, headers=coordinator)
    assert r.status_code == 422
    assert "q_unknown" in r.json()["errors"]["questions"]

    r = client.post("/exam-books", json={**EXAM_BOOK_BODY, "questionIds": [qid]}, headers=coordinator)
    assert r.status_code == 201
    book = r.json()
    assert book["totalPoints"] == 1
    assert book["status"] == "draft"
    book_id = book["id"]

    assert client.get(f"/exam-books/{book_id}", headers=lecturer).status_code == 403
    detail = client.get(f"/exam-books/{book_id}", headers=coordinator).json()
    assert detail["entries"][0]["question"]["id"] == qid
    listing = client.get("/exam-books?search=endocrine", headers=coordinator).json()
    assert listing["total"] == 1
    assert client.get("/exam-books/subjects", headers=coordinator).json() == ["Endocrinology"]

    r = client.put(f"/exam-books/{book_id}", json={**EXAM_BOOK_BODY, "duration": 45, "questionIds": [qid]}, headers=coordinator)
    assert r.json()["duration"] == 45

    assert client.post(f"/exam-books/{book_id}/publish", headers=coordinator).status_code == 409
    assert client.post(f"/exam-books/{book_id}/finalize", headers=coordinator).json()["status"] == "finalized"
    assert client.post(f"/exam-books/{book_id}/finalize", headers=coordinator).status_code == 409
    r = client.put(f"/exam-books/{book_id}", json={**EXAM_BOOK_BODY, "questionIds": [qid]}, headers=coordinator)
    assert r.status_code == 403

    r = client.get(f"/exam-books/{book_id}/export/txt", headers=coordinator)
    assert r.status_code == 200
    assert "EXAM BOOK: ENDOCRINE BLOCK FINAL" in r.text
    assert "exam-book-endocrine-block-final-" in r.headers["content-disposition"]
    r = client.get(f"/exam-books/{book_id}/export/docx", headers=coordinator)
    assert r.headers["content-type"].startswith("application/vnd.openxmlformats")
    r = client.get(f"/exam-books/{book_id}/export/csv", headers=coordinator)
    assert qid in r.text

    assert client.post(f"/exam-books/{book_id}/publish", headers=coordinator).json()["status"] == "published"
    assert client.delete(f"/exam-books/{book_id}", headers=coordinator).status_code == 204
    assert client.get(f"/exam-books/{book_id}", headers=coordinator).status_code == 404
