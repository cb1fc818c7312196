"""
FastAPI application entrypoint.
Run with: uvicorn qbank.main:app --reload --port 8000 (from backend/)

Routes are mounted at root (no /api/v1 prefix):
  - Auth:       POST /auth/register, POST /auth/login, GET /auth/me
  - Users:      GET /users, GET /users/reviewers, PATCH /users/me, PUT|POST|DELETE /users/{id}/roles..., POST /users/{id}/verify
  - Dashboard:  GET /dashboard
  - Questions:  GET|POST /questions (?search=&subject=&status=&mine=), GET|PATCH|DELETE /questions/{id}, POST /questions/{id}/submit|assign|review,
                POST /questions/import, GET /questions/export/csv|json
  - Exam books: GET|POST /exam-books, GET|PUT|DELETE /exam-books/{id}, POST /exam-books/{id}/finalize|publish,
                GET /exam-books/{id}/export/txt|csv|docx
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from qbank.api.auth import router as auth_router
from qbank.api.dashboard import router as dashboard_router
from qbank.api.exam_books import router as exam_books_router
from qbank.api.questions import router as questions_router
from qbank.api.users import router as users_router
from qbank.config import settings
from qbank.container import Container, build_container
from qbank.errors import NotFoundError, PermissionDenied, QBankError, StateError, StorageError, ValidationError

logger = logging.getLogger(__name__)

_ERROR_STATUS: list[tuple[type[QBankError], int]] = [
    (ValidationError, 422),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (StateError, status.HTTP_409_CONFLICT),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
]


def _error_status(exc: QBankError) -> int:
    for cls, code in _ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return status.HTTP_400_BAD_REQUEST


async def qbank_error_handler(request: Request, exc: QBankError) -> JSONResponse:
    code = _error_status(exc)
    if code == status.HTTP_503_SERVICE_UNAVAILABLE:
        logger.error("%s %s: %s", request.method, request.url.path, exc.message)
    content = {"detail": exc.message}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=code, content=content)


def create_app(container: Container | None = None) -> FastAPI:
    """Build the app. Pass a container to skip building one from settings at startup (tests)."""
    app = FastAPI(
        title="Question Bank API",
        description="Question bank review workflow and exam book assembly.",
        version="0.1.0",
    )

    _origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_origins if _origins else ["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(QBankError, qbank_error_handler)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(dashboard_router)
    app.include_router(questions_router)
    app.include_router(exam_books_router)

    if container is not None:
        app.state.container = container

    @app.on_event("startup")
    def startup():
        """Configure logging, build services. Fail fast if production uses default SECRET_KEY."""
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
        if settings.is_production and settings.uses_default_secret:
            logger.critical("SECRET_KEY must be set in production. Set SECRET_KEY in env or .env.")
            raise RuntimeError("SECRET_KEY must be set in production. Set SECRET_KEY in env or .env.")
        if getattr(app.state, "container", None) is None:
            app.state.container = build_container(settings)
            logger.info("Services ready (data_dir=%s)", settings.data_dir)

    @app.get("/health")
    def health(request: Request):
        """Health check (JSON) with blob store usage."""
        c: Container | None = getattr(request.app.state, "container", None)
        body = {"status": "ok", "message": "Question Bank API"}
        if c is not None:
            body["storage"] = c.question_store.health()
        return body

    return app


app = create_app()
