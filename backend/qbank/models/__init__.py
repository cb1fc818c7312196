"""
SQLAlchemy models for the identity store. Import here so Alembic and the app can use them.
"""
from qbank.models.user import User
from qbank.models.user_role import UserRole

__all__ = ["User", "UserRole"]
