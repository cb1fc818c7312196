"""
User and role schemas. UserProfile is the in-memory view every access predicate works on.
"""
from datetime import datetime
from typing import Literal, get_args

from pydantic import BaseModel, field_validator

RoleType = Literal["admin", "coordinator", "reviewer", "lecturer", "restricted-lecturer"]
ROLE_TYPES: tuple[str, ...] = get_args(RoleType)


class Role(BaseModel):
    type: RoleType
    permissions: list[str] = []


class UserProfile(BaseModel):
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    roles: list[Role] = []
    is_verified: bool = False
    department: str | None = None
    phone_number: str | None = None
    title: str | None = None
    bio: str | None = None
    office_location: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email

    @property
    def role_types(self) -> set[str]:
        return {r.type for r in self.roles}


class UserListResponse(BaseModel):
    items: list[UserProfile]
    total: int


class ProfileUpdateRequest(BaseModel):
    """Fields a user may change on their own profile. None means unchanged."""
    first_name: str | None = None
    last_name: str | None = None
    department: str | None = None
    phone_number: str | None = None
    title: str | None = None
    bio: str | None = None
    office_location: str | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def name_not_blank(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("name must not be blank")
        return v


class RolesUpdateRequest(BaseModel):
    roles: list[RoleType]
    is_verified: bool | None = None
