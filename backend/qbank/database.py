"""
SQLAlchemy engine and session for the identity store (users, user_roles).
Supports PostgreSQL and SQLite. Questions and exam books live in the blob store, not here.
"""
import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(database_url: str) -> Engine:
    """Engine for database_url; in-memory sqlite shares one connection so tables survive across sessions."""
    is_sqlite = database_url.startswith("sqlite")
    kwargs = {}
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(
        database_url,
        pool_pre_ping=not is_sqlite,
        echo=False,  # Set True for SQL logging during development
        **kwargs,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(bind: Engine) -> None:
    """Create identity tables if missing. Call once at app startup (Alembic handles production schema)."""
    # Import all models so they register with Base before create_all
    from qbank.models import user, user_role  # noqa: F401
    Base.metadata.create_all(bind=bind)
    logger.info("Identity store tables ready (%s)", bind.url.render_as_string(hide_password=True))
