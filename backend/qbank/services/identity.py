"""
Identity store: users and their roles in the relational database.

Every role change goes through normalize_roles, so a stored user never ends up with no roles
or with restricted-lecturer next to a functional role. Methods open their own session and
commit before returning; on failure nothing is written.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from qbank.errors import NotFoundError, ValidationError
from qbank.models.user import User
from qbank.models.user_role import UserRole
from qbank.schemas.auth import RegisterRequest, TokenResponse
from qbank.schemas.user import ProfileUpdateRequest, Role, UserProfile
from qbank.services.auth import create_access_token, hash_password, verify_password
from qbank.services.roles import LECTURER, REVIEWER, RESTRICTED_LECTURER, RoleSet, normalize_roles, role_set_of

logger = logging.getLogger(__name__)


@dataclass
class AccountResult:
    success: bool
    user: UserProfile | None = None
    error: str | None = None


def _parse_id(user_id: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        return None


def to_profile(user: User) -> UserProfile:
    return UserProfile(
        id=str(user.id),
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        roles=normalize_roles(r.role_type for r in user.roles),
        is_verified=user.is_verified,
        department=user.department,
        phone_number=user.phone_number,
        title=user.title,
        bio=user.bio,
        office_location=user.office_location,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _role_set(user: User) -> RoleSet:
    return role_set_of(r.role_type for r in user.roles)


class IdentityStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # --- reads ---

    def _load(self, db: Session, user_id: str | uuid.UUID) -> User:
        uid = _parse_id(user_id)
        user = db.get(User, uid) if uid else None
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    def get_user(self, user_id: str | uuid.UUID) -> UserProfile | None:
        uid = _parse_id(user_id)
        if uid is None:
            return None
        with self._session_factory() as db:
            user = db.get(User, uid)
            return to_profile(user) if user else None

    def get_user_by_email(self, email: str) -> UserProfile | None:
        with self._session_factory() as db:
            user = db.scalars(select(User).where(User.email == email.strip().lower())).first()
            return to_profile(user) if user else None

    def get_all_users(self) -> list[UserProfile]:
        with self._session_factory() as db:
            users = db.scalars(select(User).order_by(User.created_at.desc(), User.email)).all()
            return [to_profile(u) for u in users]

    def list_reviewers(self) -> list[UserProfile]:
        """Verified users holding the reviewer role: the pool offered for assignment."""
        return [
            u for u in self.get_all_users()
            if u.is_verified and REVIEWER in u.role_types
        ]

    # --- role mutations ---

    def _write_roles(self, db: Session, user: User, role_set: RoleSet) -> None:
        user.roles.clear()
        # delete old rows before inserting so (user_id, role_type) stays unique
        db.flush()
        for role in role_set.to_roles():
            user.roles.append(UserRole(role_type=role.type, permissions=list(role.permissions)))

    def update_user_roles(
        self, user_id: str | uuid.UUID, roles: Iterable[str | Role], verified: bool | None = None
    ) -> UserProfile:
        """Replace the user's roles (normalized) and optionally set the verified flag."""
        types = [r.type if isinstance(r, Role) else r for r in roles]
        try:
            role_set = role_set_of(types)
        except ValueError as e:
            raise ValidationError({"roles": str(e)}) from e
        with self._session_factory() as db:
            user = self._load(db, user_id)
            self._write_roles(db, user, role_set)
            if verified is not None:
                user.is_verified = verified
            db.commit()
            db.refresh(user)
            logger.info("Roles of %s set to %s (verified=%s)", user.id, role_set.types(), user.is_verified)
            return to_profile(user)

    def grant_role(self, user_id: str | uuid.UUID, role_type: str) -> UserProfile:
        """Add one role. Granting a functional role also marks the account verified."""
        with self._session_factory() as db:
            user = self._load(db, user_id)
            try:
                role_set = _role_set(user).grant(role_type)
            except ValueError as e:
                raise ValidationError({"role": str(e)}) from e
            self._write_roles(db, user, role_set)
            if role_type != RESTRICTED_LECTURER:
                user.is_verified = True
            db.commit()
            db.refresh(user)
            logger.info("Granted %s to %s", role_type, user.id)
            return to_profile(user)

    def revoke_role(self, user_id: str | uuid.UUID, role_type: str) -> UserProfile:
        """Remove one role; removing the last functional role leaves restricted-lecturer."""
        with self._session_factory() as db:
            user = self._load(db, user_id)
            try:
                role_set = _role_set(user).revoke(role_type)
            except ValueError as e:
                raise ValidationError({"role": str(e)}) from e
            self._write_roles(db, user, role_set)
            db.commit()
            db.refresh(user)
            logger.info("Revoked %s from %s; now %s", role_type, user.id, role_set.types())
            return to_profile(user)

    def verify_user(self, user_id: str | uuid.UUID) -> UserProfile:
        """Mark verified; a restricted account becomes a lecturer."""
        with self._session_factory() as db:
            user = self._load(db, user_id)
            role_set = _role_set(user)
            if role_set.restricted:
                self._write_roles(db, user, role_set.grant(LECTURER))
            user.is_verified = True
            db.commit()
            db.refresh(user)
            logger.info("Verified %s", user.id)
            return to_profile(user)

    # --- profile ---

    def update_user_profile(self, user_id: str | uuid.UUID, data: ProfileUpdateRequest) -> UserProfile:
        with self._session_factory() as db:
            user = self._load(db, user_id)
            for field, value in data.model_dump(exclude_unset=True).items():
                if value is None:
                    continue
                setattr(user, field, value.strip())
            db.commit()
            db.refresh(user)
            return to_profile(user)

    # --- accounts ---

    def create_account(self, data: RegisterRequest) -> AccountResult:
        """New user with a single restricted-lecturer role, unverified."""
        email = str(data.email).strip().lower()
        with self._session_factory() as db:
            if db.scalars(select(User).where(User.email == email)).first():
                return AccountResult(success=False, error="Email already registered")
            user = User(
                email=email,
                password_hash=hash_password(data.password),
                first_name=data.first_name,
                last_name=data.last_name,
                department=data.department,
                phone_number=data.phone_number,
                is_verified=False,
            )
            for role in normalize_roles([RESTRICTED_LECTURER]):
                user.roles.append(UserRole(role_type=role.type, permissions=list(role.permissions)))
            db.add(user)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                logger.warning("Register IntegrityError: %s", e)
                return AccountResult(success=False, error="Email already registered")
            db.refresh(user)
            logger.info("Account created: %s", user.id)
            return AccountResult(success=True, user=to_profile(user))

    def authenticate(self, email: str, password: str) -> TokenResponse | None:
        """Token plus profile for valid credentials, else None."""
        with self._session_factory() as db:
            user = db.scalars(select(User).where(User.email == email.strip().lower())).first()
            if not user or not verify_password(password, user.password_hash):
                logger.info("Login failed for %s", email)
                return None
            profile = to_profile(user)
        token = create_access_token(profile.id, profile.email, sorted(profile.role_types))
        return TokenResponse(access_token=token, user=profile)
