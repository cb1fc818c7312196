"""
Service wiring: one IdentityStore, QuestionWorkflow and ExamAssembly per process,
hung on app.state.container and reached from request handlers through qbank.api.deps.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from qbank.config import Settings
from qbank.database import init_db, make_engine, make_session_factory
from qbank.services.assembly import ExamAssembly
from qbank.services.identity import IdentityStore
from qbank.services.workflow import QuestionWorkflow
from qbank.storage import BlobStore, ExamBookStore, FileBlobStore, QuestionStore

logger = logging.getLogger(__name__)


@dataclass
class Container:
    identity: IdentityStore
    question_store: QuestionStore
    exam_book_store: ExamBookStore
    workflow: QuestionWorkflow
    assembly: ExamAssembly


def build_services(engine: Engine, blobs: BlobStore) -> Container:
    init_db(engine)
    identity = IdentityStore(make_session_factory(engine))
    question_store = QuestionStore(blobs)
    exam_book_store = ExamBookStore(blobs)
    workflow = QuestionWorkflow(question_store, identity.get_user)
    assembly = ExamAssembly(exam_book_store, workflow)
    logger.info(
        "Loaded %s questions and %s exam books", len(workflow.questions), len(assembly.exam_books)
    )
    return Container(
        identity=identity,
        question_store=question_store,
        exam_book_store=exam_book_store,
        workflow=workflow,
        assembly=assembly,
    )


def build_container(settings: Settings) -> Container:
    blobs = FileBlobStore(settings.data_dir, settings.storage_quota_bytes)
    return build_services(make_engine(settings.database_url), blobs)
