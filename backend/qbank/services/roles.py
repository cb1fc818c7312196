"""
Role sets and their invariant: a user always holds either one or more functional roles
(admin, coordinator, reviewer, lecturer) or exactly the restricted-lecturer role, never both
and never nothing. Every role mutation goes through normalize_roles.
"""
from dataclasses import dataclass
from typing import Iterable

from qbank.schemas.user import Role

ADMIN = "admin"
COORDINATOR = "coordinator"
REVIEWER = "reviewer"
LECTURER = "lecturer"
RESTRICTED_LECTURER = "restricted-lecturer"

# Canonical order; also the order roles are stored and displayed in.
FUNCTIONAL_ROLES: tuple[str, ...] = (ADMIN, COORDINATOR, REVIEWER, LECTURER)

_BASE_PERMISSIONS = ["dashboard-access", "settings-access"]

ROLE_PERMISSIONS: dict[str, list[str]] = {
    ADMIN: ["manage-users", "verify-accounts", "system-config", *_BASE_PERMISSIONS],
    COORDINATOR: ["create-exams", "manage-questions", "view-questions", *_BASE_PERMISSIONS],
    REVIEWER: ["review-questions", "approve-questions", "view-questions", *_BASE_PERMISSIONS],
    LECTURER: ["submit-questions", "view-questions", *_BASE_PERMISSIONS],
    RESTRICTED_LECTURER: list(_BASE_PERMISSIONS),
}


@dataclass(frozen=True)
class RoleSet:
    """Functional roles held; empty means the account is restricted."""
    functional: frozenset[str] = frozenset()

    @property
    def restricted(self) -> bool:
        return not self.functional

    def types(self) -> list[str]:
        if self.restricted:
            return [RESTRICTED_LECTURER]
        return [r for r in FUNCTIONAL_ROLES if r in self.functional]

    def to_roles(self) -> list[Role]:
        return [Role(type=t, permissions=list(ROLE_PERMISSIONS[t])) for t in self.types()]

    def grant(self, role_type: str) -> "RoleSet":
        if role_type == RESTRICTED_LECTURER:
            return RoleSet()
        _check_role_type(role_type)
        return RoleSet(self.functional | {role_type})

    def revoke(self, role_type: str) -> "RoleSet":
        if role_type == RESTRICTED_LECTURER:
            return self
        _check_role_type(role_type)
        return RoleSet(self.functional - {role_type})


def _check_role_type(role_type: str) -> None:
    if role_type not in FUNCTIONAL_ROLES:
        raise ValueError(f"Unknown role type: {role_type!r}")


def role_set_of(role_types: Iterable[str]) -> RoleSet:
    """Build a RoleSet from raw role type strings; restricted-lecturer is dropped when anything functional is present."""
    functional = set()
    for t in role_types:
        if t == RESTRICTED_LECTURER:
            continue
        _check_role_type(t)
        functional.add(t)
    return RoleSet(frozenset(functional))


def normalize_roles(role_types: Iterable[str]) -> list[Role]:
    """Role list satisfying the never-empty / restricted-is-exclusive invariant, with canonical permissions."""
    return role_set_of(role_types).to_roles()
