"""
Shared fixtures: in-memory identity database, in-memory blob store, engines wired on top,
and factories for users and question content.
"""
import uuid

import pytest

from qbank.database import init_db, make_engine, make_session_factory
from qbank.schemas.auth import RegisterRequest
from qbank.schemas.question import QuestionContent
from qbank.schemas.user import UserProfile
from qbank.services.assembly import ExamAssembly
from qbank.services.identity import IdentityStore
from qbank.services.roles import normalize_roles
from qbank.services.workflow import QuestionWorkflow
from qbank.storage import ExamBookStore, MemoryBlobStore, QuestionStore

OPTIONS = ["Aortic stenosis", "Mitral regurgitation", "Tricuspid atresia", "Pericarditis", "HOCM"]


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def identity(engine):
    return IdentityStore(make_session_factory(engine))


@pytest.fixture
def make_user(identity):
    """Create a stored account with the given roles; returns its UserProfile."""

    def _make(*roles: str, verified: bool = True, first_name: str = "Test", last_name: str | None = None):
        suffix = uuid.uuid4().hex[:8]
        result = identity.create_account(RegisterRequest(
            email=f"user-{suffix}@faculty.example.edu",
            password="testpass123",
            first_name=first_name,
            last_name=last_name or suffix,
        ))
        assert result.success, result.error
        return identity.update_user_roles(result.user.id, roles, verified)

    return _make


@pytest.fixture
def profile():
    """In-memory UserProfile (no database) for pure predicate tests."""

    def _profile(*roles: str, verified: bool = True, user_id: str | None = None) -> UserProfile:
        return UserProfile(
            id=user_id or uuid.uuid4().hex,
            email="someone@faculty.example.edu",
            first_name="Some",
            last_name="One",
            roles=normalize_roles(roles),
            is_verified=verified,
        )

    return _profile


@pytest.fixture
def question_content():
    """Valid multiple-choice content; keyword overrides replace fields."""

    def _content(**overrides) -> QuestionContent:
        data = dict(
            clinical_vignette="A 65-year-old man presents with exertional syncope and a harsh systolic murmur.",
            lead_question="What is the most likely diagnosis?",
            subject="Cardiology",
            topic="Valvular heart disease",
            options=list(OPTIONS),
            correct_answer=OPTIONS[0],
            explanation="Syncope, angina and dyspnea on exertion point to aortic stenosis.",
            learning_objectives=["Recognise the presentation of aortic stenosis"],
            pathomechanism="degenerative",
            aspect="knowledge",
            disease="Aortic stenosis",
        )
        data.update(overrides)
        return QuestionContent(**data)

    return _content


@pytest.fixture
def blobs():
    return MemoryBlobStore()


@pytest.fixture
def workflow(blobs, identity):
    return QuestionWorkflow(QuestionStore(blobs), identity.get_user)


@pytest.fixture
def assembly(blobs, workflow):
    return ExamAssembly(ExamBookStore(blobs), workflow)


@pytest.fixture
def approved_question(workflow, make_user, question_content):
    """Factory: run a question through the full review cycle and return its id."""

    def _approved(**overrides):
        author = make_user("lecturer")
        admin = make_user("admin")
        r1, r2 = make_user("reviewer"), make_user("reviewer")
        qid = workflow.submit_question(question_content(**overrides), author, status="submitted")
        workflow.assign_reviewers(qid, r1.id, r2.id, admin)
        workflow.decide_review(qid, "approve", None, r1)
        return qid

    return _approved
