"""
User management routes: admin list, role grant/revoke, verify, reviewer pool; own profile update.
"""
import logging

from fastapi import APIRouter, Depends

from qbank.api.deps import get_container, get_current_user
from qbank.container import Container
from qbank.errors import PermissionDenied
from qbank.schemas.user import ProfileUpdateRequest, RolesUpdateRequest, RoleType, UserListResponse, UserProfile
from qbank.services.access import is_admin

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


def require_admin(current_user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if not is_admin(current_user):
        logger.warning("Admin route denied for %s", current_user.id)
        raise PermissionDenied("Administrator role required")
    return current_user


@router.get("", response_model=UserListResponse)
def list_users(
    _: UserProfile = Depends(require_admin),
    container: Container = Depends(get_container),
):
    users = container.identity.get_all_users()
    return UserListResponse(items=users, total=len(users))


@router.get("/reviewers", response_model=UserListResponse)
def list_reviewers(
    _: UserProfile = Depends(require_admin),
    container: Container = Depends(get_container),
):
    """Verified reviewers available for assignment."""
    users = container.identity.list_reviewers()
    return UserListResponse(items=users, total=len(users))


@router.patch("/me", response_model=UserProfile)
def update_my_profile(
    body: ProfileUpdateRequest,
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.identity.update_user_profile(current_user.id, body)


@router.put("/{user_id}/roles", response_model=UserProfile)
def set_roles(
    user_id: str,
    body: RolesUpdateRequest,
    _: UserProfile = Depends(require_admin),
    container: Container = Depends(get_container),
):
    """Replace a user's roles; an empty list leaves the account restricted."""
    return container.identity.update_user_roles(user_id, body.roles, body.is_verified)


@router.post("/{user_id}/roles/{role_type}", response_model=UserProfile)
def grant_role(
    user_id: str,
    role_type: RoleType,
    _: UserProfile = Depends(require_admin),
    container: Container = Depends(get_container),
):
    return container.identity.grant_role(user_id, role_type)


@router.delete("/{user_id}/roles/{role_type}", response_model=UserProfile)
def revoke_role(
    user_id: str,
    role_type: RoleType,
    _: UserProfile = Depends(require_admin),
    container: Container = Depends(get_container),
):
    return container.identity.revoke_role(user_id, role_type)


@router.post("/{user_id}/verify", response_model=UserProfile)
def verify_user(
    user_id: str,
    _: UserProfile = Depends(require_admin),
    container: Container = Depends(get_container),
):
    return container.identity.verify_user(user_id)
