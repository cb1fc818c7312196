"""
Auth routes: register (restricted, unverified account), login (JWT), GET /auth/me with roles.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from qbank.api.deps import get_container, get_current_user
from qbank.container import Container
from qbank.schemas.auth import LoginRequest, RegisterRequest, TokenResponse
from qbank.schemas.user import UserProfile

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/register", response_model=UserProfile, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, container: Container = Depends(get_container)):
    """Register a new user; the account starts as restricted-lecturer until an admin verifies it."""
    result = container.identity.create_account(data)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    return result.user


@router.post("/login", response_model=TokenResponse)
def login(data: LoginRequest, container: Container = Depends(get_container)):
    """Login with email/password; returns JWT and the user's profile."""
    session = container.identity.authenticate(data.email, data.password)
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    return session


@router.get("/me", response_model=UserProfile)
def me(current_user: UserProfile = Depends(get_current_user)):
    return current_user
