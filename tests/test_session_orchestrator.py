from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from clients.identity_client import IdentityClaims
from conftest import add_profile
from services.exceptions import PortalError
from services.navigation import NavigationIntentStore
from services.session_orchestrator import (
    ADMIN_LANDING_ROUTE,
    DEFAULT_LANDING_ROUTE,
    PROFILE_COMPLETION_ROUTE,
    PROFILE_CREATE_FAILED,
    PROFILE_LOAD_FAILED,
    PROFILE_SYNC_FAILED,
    SessionOrchestrator,
)
from services.user_service import get_profile, update_profile


@pytest.fixture
def navigation():
    return NavigationIntentStore(ttl_seconds=60)


@pytest.fixture
def orchestrator(navigation):
    return SessionOrchestrator(navigation, bootstrap_admin_emails={"chief.editor@example.org"})


def test_no_identity_means_signed_out_state(db, orchestrator):
    outcome = orchestrator.handle_session_event(db, None, current_path="/submit")

    assert not outcome.authenticated
    assert outcome.redirect_to is None
    assert outcome.notices == []


def test_first_sign_in_creates_incomplete_profile(db, orchestrator, claims):
    outcome = orchestrator.handle_session_event(db, claims, current_path="/login")

    assert outcome.authenticated
    assert outcome.user.id == claims.uid
    assert outcome.is_admin is False
    assert outcome.profile_complete is False
    assert outcome.completing_profile is True
    assert outcome.redirect_to == PROFILE_COMPLETION_ROUTE
    assert get_profile(db, claims.uid) is not None


def test_incomplete_profile_on_settings_page_stays(db, orchestrator, claims):
    add_profile(db, claims.uid, claims.email, complete=False)
    outcome = orchestrator.handle_session_event(db, claims, current_path="/profile/settings?complete=true")

    assert outcome.completing_profile is True
    assert outcome.redirect_to is None


def test_bootstrap_admin_lands_on_admin_dashboard(db, orchestrator):
    claims = IdentityClaims(uid="uid-boss", email="chief.editor@example.org", display_name="Chief")
    first = orchestrator.handle_session_event(db, claims, current_path="/login")
    assert first.is_admin is True
    # Admins still complete their profile first
    assert first.redirect_to == PROFILE_COMPLETION_ROUTE

    update_profile(db, "uid-boss", {"username": "chief", "phone_number": "+1 555 0000001"})

    second = orchestrator.handle_session_event(db, claims, current_path="/login")
    assert second.redirect_to == ADMIN_LANDING_ROUTE


def test_complete_profile_lands_on_dashboard_from_login(db, orchestrator, claims):
    add_profile(db, claims.uid, claims.email, display_name=claims.display_name)
    outcome = orchestrator.handle_session_event(db, claims, current_path="/login")
    assert outcome.redirect_to == DEFAULT_LANDING_ROUTE


def test_complete_profile_elsewhere_is_not_moved(db, orchestrator, claims):
    add_profile(db, claims.uid, claims.email, display_name=claims.display_name)
    outcome = orchestrator.handle_session_event(db, claims, current_path="/papers/123")
    assert outcome.redirect_to is None


def test_pending_intent_is_followed_once(db, orchestrator, navigation, claims):
    add_profile(db, claims.uid, claims.email, display_name=claims.display_name)
    navigation.remember("browser-1", "/submit")

    first = orchestrator.handle_session_event(db, claims, current_path="/login", intent_key="browser-1")
    second = orchestrator.handle_session_event(db, claims, current_path="/login", intent_key="browser-1")

    assert first.redirect_to == "/submit"
    assert second.redirect_to == DEFAULT_LANDING_ROUTE


def test_intent_waits_until_profile_is_complete(db, orchestrator, navigation, claims):
    navigation.remember("browser-1", "/submit")

    outcome = orchestrator.handle_session_event(db, claims, current_path="/login", intent_key="browser-1")

    assert outcome.redirect_to == PROFILE_COMPLETION_ROUTE
    assert navigation.peek("browser-1").path == "/submit"


def test_provider_drift_is_synced(db, orchestrator, claims):
    add_profile(db, claims.uid, "old@example.org", display_name="Old Name")
    outcome = orchestrator.handle_session_event(db, claims, current_path="/dashboard")

    assert outcome.user.email == "ada@example.org"
    assert outcome.user.display_name == "Ada Lovelace"
    assert outcome.notices == []


def test_sync_failure_is_not_fatal(db, orchestrator, claims):
    add_profile(db, claims.uid, "old@example.org")
    with patch("services.session_orchestrator.user_service.reconcile_identity",
               side_effect=PortalError("boom", 503)):
        outcome = orchestrator.handle_session_event(db, claims, current_path="/dashboard")

    assert outcome.authenticated
    assert outcome.signed_out is False
    assert outcome.notices == [PROFILE_SYNC_FAILED]


def test_profile_lookup_failure_forces_sign_out(db, orchestrator, claims):
    with patch("services.session_orchestrator.user_service.get_profile",
               side_effect=OperationalError("SELECT", {}, Exception("db down"))):
        outcome = orchestrator.handle_session_event(db, claims, current_path="/login")

    assert outcome.signed_out is True
    assert not outcome.authenticated
    assert outcome.notices == [PROFILE_LOAD_FAILED]


def test_profile_creation_failure_forces_sign_out(db, orchestrator, claims):
    with patch("services.session_orchestrator.user_service.create_profile_from_claims",
               side_effect=PortalError("Database unavailable", 503)):
        outcome = orchestrator.handle_session_event(db, claims, current_path="/login")

    assert outcome.signed_out is True
    assert outcome.notices == [PROFILE_CREATE_FAILED]


def test_sign_out_discards_pending_intent(orchestrator, navigation):
    navigation.remember("browser-1", "/submit")
    outcome = orchestrator.sign_out("browser-1")

    assert outcome.signed_out is True
    assert navigation.peek("browser-1") is None
