"""
UserRole: one role held by a user, with its permission list.
Rows are replaced wholesale on every role change (see IdentityStore.update_user_roles).
"""
import uuid
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.types import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from qbank.database import Base
from qbank.models.types import UuidType


class UserRole(Base):
    __tablename__ = "user_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UuidType(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_type: Mapped[str] = mapped_column(String(30), nullable=False)
    permissions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "role_type IN ('admin', 'coordinator', 'reviewer', 'lecturer', 'restricted-lecturer')",
            name="user_roles_role_type_check",
        ),
        UniqueConstraint("user_id", "role_type", name="user_roles_user_role_unique"),
    )

    user = relationship("User", back_populates="roles")
