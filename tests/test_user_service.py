from types import SimpleNamespace

import pytest

from clients.identity_client import IdentityClaims
from conftest import add_profile
from database.models.user_model import UserRole
from services import audit_service, user_service
from services.exceptions import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError


def _profile(**overrides):
    fields = dict(username="ada_l", role=UserRole.AUTHOR, phone_number="+44 20 7946 0000", is_admin=False)
    fields.update(overrides)
    return SimpleNamespace(**fields)


# ------------------------------------------------------------
# PREDICATES
# ------------------------------------------------------------
def test_complete_profile():
    assert user_service.is_profile_complete(_profile())


@pytest.mark.parametrize("missing", ["username", "role", "phone_number"])
def test_any_missing_field_makes_profile_incomplete(missing):
    assert not user_service.is_profile_complete(_profile(**{missing: None}))


def test_no_profile_is_incomplete():
    assert not user_service.is_profile_complete(None)


@pytest.mark.parametrize("value", ["true", 1, "True", None, False])
def test_only_boolean_true_grants_admin(value):
    assert not user_service.is_admin_user(_profile(is_admin=value))


def test_boolean_true_grants_admin():
    assert user_service.is_admin_user(_profile(is_admin=True))


def test_bootstrap_email_list_parsing():
    assert user_service.load_bootstrap_admin_emails(" A@x.org, ,b@y.org ") == {"a@x.org", "b@y.org"}


# ------------------------------------------------------------
# CREATION / RECONCILIATION
# ------------------------------------------------------------
def test_create_profile_is_incomplete_by_default(db, claims):
    profile = user_service.create_profile_from_claims(db, claims)

    assert profile.id == "uid-ada"
    assert profile.display_name == "Ada Lovelace"
    assert profile.is_admin is False
    assert not user_service.is_profile_complete(profile)


def test_create_profile_without_name_uses_default(db):
    profile = user_service.create_profile_from_claims(db, IdentityClaims(uid="uid-x", email="x@example.org"))
    assert profile.display_name == "User"


def test_bootstrap_admin_is_flagged_on_creation(db):
    claims = IdentityClaims(uid="uid-boss", email="Chief.Editor@example.org")
    profile = user_service.create_profile_from_claims(db, claims, {"chief.editor@example.org"})

    assert profile.is_admin is True
    assert profile.role == UserRole.ADMIN


def test_create_with_signup_fields_is_complete(db, claims):
    profile = user_service.create_profile_from_claims(
        db, claims, extra={"username": "ada_l", "role": "Author", "phone_number": "+44 20 7946 0000"}
    )
    assert user_service.is_profile_complete(profile)
    assert profile.role == UserRole.AUTHOR


def test_reconcile_copies_provider_drift(db, claims):
    profile = add_profile(db, claims.uid, "old@example.org", display_name="Old Name")
    changed = user_service.reconcile_identity(db, profile, claims)

    assert set(changed) == {"display_name", "email"}
    assert profile.email == "ada@example.org"
    assert profile.display_name == "Ada Lovelace"


def test_reconcile_without_drift_changes_nothing(db, claims):
    profile = add_profile(db, claims.uid, claims.email, display_name=claims.display_name)
    assert user_service.reconcile_identity(db, profile, claims) == []


# ------------------------------------------------------------
# UPDATES
# ------------------------------------------------------------
def test_update_rejects_taken_username(db):
    add_profile(db, "uid-1", "one@example.org", username="taken_name")
    add_profile(db, "uid-2", "two@example.org", complete=False)

    with pytest.raises(ConflictError) as exc:
        user_service.update_profile(db, "uid-2", {"username": "taken_name"})
    assert exc.value.message == "Username already taken. Please choose another one."


def test_update_rejects_taken_phone(db):
    add_profile(db, "uid-1", "one@example.org", phone_number="+1 555 0100100")
    add_profile(db, "uid-2", "two@example.org", complete=False)

    with pytest.raises(ConflictError) as exc:
        user_service.update_profile(db, "uid-2", {"phone_number": "+1 555 0100100"})
    assert exc.value.message == "Phone number already in use. Please use a different one."


def test_update_keeps_own_username(db):
    add_profile(db, "uid-1", "one@example.org", username="mine")
    profile = user_service.update_profile(db, "uid-1", {"username": "mine", "institution": "MIT"})
    assert profile.institution == "MIT"


def test_update_with_empty_phone_clears_it(db):
    add_profile(db, "uid-1", "one@example.org")
    profile = user_service.update_profile(db, "uid-1", {"phone_number": ""})

    assert profile.phone_number is None
    assert not user_service.is_profile_complete(profile)


def test_update_cannot_touch_admin_flag(db):
    add_profile(db, "uid-1", "one@example.org")
    with pytest.raises(InvalidInputError):
        user_service.update_profile(db, "uid-1", {"is_admin": True})


def test_completing_profile(db, claims):
    user_service.create_profile_from_claims(db, claims)
    profile = user_service.update_profile(
        db, claims.uid, {"username": "ada_l", "role": "Reviewer", "phone_number": "+44 20 7946 0000"}
    )
    assert user_service.is_profile_complete(profile)
    assert profile.role == UserRole.REVIEWER


# ------------------------------------------------------------
# LOGIN / ADMIN
# ------------------------------------------------------------
def test_resolve_login_email(db):
    add_profile(db, "uid-1", "one@example.org", username="user_one")

    assert user_service.resolve_login_email(db, "user_one") == "one@example.org"
    assert user_service.resolve_login_email(db, "someone@example.org") == "someone@example.org"
    with pytest.raises(NotFoundError):
        user_service.resolve_login_email(db, "nobody")


def test_admin_can_grant_admin_and_is_audited(db):
    admin = add_profile(db, "uid-admin", "admin@example.org", is_admin=True)
    add_profile(db, "uid-1", "one@example.org")

    target = user_service.set_admin_flag(db, admin, "uid-1", True, ip_address="127.0.0.1")

    assert target.is_admin is True
    entries = audit_service.list_actions_for_target(db, "uid-1")
    assert [e.action for e in entries] == [audit_service.TOGGLE_ADMIN]
    assert entries[0].payload == {"is_admin": True}


def test_admin_cannot_change_own_flag(db):
    admin = add_profile(db, "uid-admin", "admin@example.org", is_admin=True)
    with pytest.raises(PermissionDeniedError):
        user_service.set_admin_flag(db, admin, "uid-admin", False)


def test_non_admin_cannot_grant_admin(db):
    author = add_profile(db, "uid-1", "one@example.org")
    add_profile(db, "uid-2", "two@example.org")
    with pytest.raises(PermissionDeniedError):
        user_service.set_admin_flag(db, author, "uid-2", True)
