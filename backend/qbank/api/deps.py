"""
Shared dependencies: the service container and the current user from the Bearer token.
"""
import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from qbank.container import Container
from qbank.schemas.user import UserProfile
from qbank.services.auth import decode_access_token

security = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)


def get_container(request: Request) -> Container:
    return request.app.state.container


def _user_from_credentials(
    credentials: HTTPAuthorizationCredentials | None, container: Container
) -> UserProfile | None:
    if not credentials or not (getattr(credentials, "credentials", None) or "").strip():
        logger.debug("Auth failed: no Bearer token in request")
        return None
    payload = decode_access_token(credentials.credentials)
    if not payload or "sub" not in payload:
        logger.debug("Auth failed: invalid or expired token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = container.identity.get_user(payload["sub"])
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    container: Container = Depends(get_container),
) -> UserProfile:
    """Require valid Bearer token; return the user's profile (with current roles) or 401."""
    user = _user_from_credentials(credentials, container)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated. Send header: Authorization: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
