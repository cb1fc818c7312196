"""Tests for the identity store: accounts, login, role mutations through normalize_roles."""
import pytest

from qbank.errors import NotFoundError, ValidationError
from qbank.schemas.auth import RegisterRequest
from qbank.schemas.user import ProfileUpdateRequest
from qbank.services.auth import decode_access_token


def _register(identity, email="new.lecturer@faculty.example.edu"):
    return identity.create_account(RegisterRequest(
        email=email, password="s3cret-pass", first_name="Nora", last_name="Lee", department="Medicine",
    ))


def test_create_account_is_restricted_and_unverified(identity):
    result = _register(identity)
    assert result.success
    user = result.user
    assert [r.type for r in user.roles] == ["restricted-lecturer"]
    assert user.roles[0].permissions == ["dashboard-access", "settings-access"]
    assert not user.is_verified
    assert user.department == "Medicine"


def test_duplicate_email_rejected(identity):
    _register(identity)
    result = _register(identity, email="New.Lecturer@faculty.example.edu")
    assert not result.success
    assert "already registered" in result.error


def test_authenticate(identity):
    _register(identity)
    session = identity.authenticate("new.lecturer@faculty.example.edu", "s3cret-pass")
    assert session is not None
    payload = decode_access_token(session.access_token)
    assert payload["sub"] == session.user.id
    assert payload["roles"] == ["restricted-lecturer"]
    assert identity.authenticate("new.lecturer@faculty.example.edu", "wrong") is None
    assert identity.authenticate("nobody@faculty.example.edu", "s3cret-pass") is None


def test_update_roles_normalizes(identity, make_user):
    user = make_user("lecturer")
    updated = identity.update_user_roles(user.id, ["restricted-lecturer", "reviewer", "admin"], True)
    assert [r.type for r in updated.roles] == ["admin", "reviewer"]
    emptied = identity.update_user_roles(user.id, [])
    assert [r.type for r in emptied.roles] == ["restricted-lecturer"]
    assert emptied.is_verified


def test_update_roles_rejects_unknown(identity, make_user):
    user = make_user("lecturer")
    with pytest.raises(ValidationError):
        identity.update_user_roles(user.id, ["dean"])
    assert identity.get_user(user.id).role_types == {"lecturer"}


def test_grant_functional_role_verifies(identity):
    user = _register(identity).user
    granted = identity.grant_role(user.id, "reviewer")
    assert granted.role_types == {"reviewer"}
    assert granted.is_verified


def test_revoke_last_role_leaves_restricted(identity, make_user):
    user = make_user("coordinator")
    revoked = identity.revoke_role(user.id, "coordinator")
    assert revoked.role_types == {"restricted-lecturer"}


def test_verify_user_promotes_restricted_to_lecturer(identity, make_user):
    user = make_user(verified=False)
    verified = identity.verify_user(user.id)
    assert verified.is_verified
    assert verified.role_types == {"lecturer"}
    reviewer = make_user("reviewer", verified=False)
    assert identity.verify_user(reviewer.id).role_types == {"reviewer"}


def test_list_reviewers_only_verified(identity, make_user):
    good = make_user("reviewer")
    make_user("reviewer", verified=False)
    make_user("lecturer")
    assert [u.id for u in identity.list_reviewers()] == [good.id]


def test_update_profile(identity, make_user):
    user = make_user("lecturer")
    updated = identity.update_user_profile(user.id, ProfileUpdateRequest(title=" Dr. ", office_location="B-204"))
    assert updated.title == "Dr."
    assert updated.office_location == "B-204"
    assert updated.first_name == user.first_name


def test_unknown_user(identity):
    assert identity.get_user("not-a-uuid") is None
    with pytest.raises(NotFoundError):
        identity.grant_role("00000000-0000-0000-0000-000000000000", "admin")
