# File: services/session_orchestrator.py
"""
Bridges identity-provider session events to application user state.

Every sign-in, sign-out or token refresh in the browser is reported to the
API; the orchestrator loads (or creates) the matching profile, works out the
admin flag and profile completeness, and decides where the browser should go
next.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clients.identity_client import IdentityClaims
from database.models.user_model import UserProfile
from services import user_service
from services.exceptions import ConflictError, PermissionDeniedError, PortalError
from services.navigation import NavigationIntentStore

logger = logging.getLogger(__name__)

PROFILE_SETTINGS_PATH = "/profile/settings"
PROFILE_COMPLETION_ROUTE = "/profile/settings?complete=true"
ADMIN_LANDING_ROUTE = "/admin/dashboard"
DEFAULT_LANDING_ROUTE = "/dashboard"
AUTH_ENTRY_PATHS = {"/login", "/signup", PROFILE_SETTINGS_PATH}

PROFILE_LOAD_FAILED = "Could not load your profile from the database. You have been signed out; please try again."
PROFILE_CREATE_FAILED = "Could not save your profile to the database. You have been signed out; please try again."
PROFILE_SYNC_FAILED = "Could not sync your name, photo or email from your sign-in provider."


@dataclass
class SessionOutcome:
    user: Optional[UserProfile] = None
    is_admin: bool = False
    profile_complete: bool = False
    completing_profile: bool = False
    redirect_to: Optional[str] = None
    signed_out: bool = False
    notices: List[str] = field(default_factory=list)

    @property
    def authenticated(self) -> bool:
        return self.user is not None


def _path_only(path: Optional[str]) -> Optional[str]:
    if path is None:
        return None
    return path.split("?", 1)[0].split("#", 1)[0] or "/"


def landing_route_for(is_admin: bool) -> str:
    return ADMIN_LANDING_ROUTE if is_admin else DEFAULT_LANDING_ROUTE


class SessionOrchestrator:
    def __init__(self, navigation: NavigationIntentStore, bootstrap_admin_emails: Iterable[str] = ()):
        self.navigation = navigation
        self.bootstrap_admin_emails = {e.lower() for e in bootstrap_admin_emails}

    def handle_session_event(
        self,
        db: Session,
        claims: Optional[IdentityClaims],
        current_path: Optional[str] = None,
        intent_key: Optional[str] = None,
    ) -> SessionOutcome:
        if claims is None:
            return SessionOutcome()

        outcome = SessionOutcome()
        profile = self._hydrate(db, claims, outcome)
        if profile is None:
            outcome.signed_out = True
            logger.error(f"Profile hydration failed for {claims.uid}; forcing sign-out")
            return outcome

        outcome.user = profile
        outcome.is_admin = user_service.is_admin_user(profile)
        outcome.profile_complete = user_service.is_profile_complete(profile)
        outcome.redirect_to = self._decide_redirect(outcome, current_path, intent_key)
        return outcome

    def sign_out(self, intent_key: Optional[str] = None) -> SessionOutcome:
        self.navigation.discard(intent_key)
        return SessionOutcome(signed_out=True)

    # ------------------------------------------------------------
    # HYDRATION
    # ------------------------------------------------------------
    def _hydrate(self, db: Session, claims: IdentityClaims, outcome: SessionOutcome) -> Optional[UserProfile]:
        try:
            profile = user_service.get_profile(db, claims.uid)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Profile lookup failed for {claims.uid}: {e}")
            outcome.notices.append(PROFILE_LOAD_FAILED)
            return None

        if profile is None:
            return self._create(db, claims, outcome)

        try:
            user_service.reconcile_identity(db, profile, claims)
        except PortalError as e:
            # Non-fatal: keep the stored values and tell the user
            notice = e.message if isinstance(e, PermissionDeniedError) else PROFILE_SYNC_FAILED
            outcome.notices.append(notice)
            logger.warning(f"Profile reconciliation skipped for {claims.uid}: {e.message}")
            profile = user_service.get_profile(db, claims.uid)
        return profile

    def _create(self, db: Session, claims: IdentityClaims, outcome: SessionOutcome) -> Optional[UserProfile]:
        try:
            return user_service.create_profile_from_claims(db, claims, self.bootstrap_admin_emails)
        except ConflictError:
            # Another request created the row first
            profile = user_service.get_profile(db, claims.uid)
            if profile is not None:
                return profile
            outcome.notices.append(PROFILE_CREATE_FAILED)
        except PortalError as e:
            logger.error(f"Profile creation failed for {claims.uid}: {e.message}")
            outcome.notices.append(PROFILE_CREATE_FAILED)
        return None

    # ------------------------------------------------------------
    # REDIRECTS
    # ------------------------------------------------------------
    def _decide_redirect(
        self,
        outcome: SessionOutcome,
        current_path: Optional[str],
        intent_key: Optional[str],
    ) -> Optional[str]:
        path = _path_only(current_path)

        if not outcome.profile_complete:
            outcome.completing_profile = True
            if path == PROFILE_SETTINGS_PATH:
                return None
            return PROFILE_COMPLETION_ROUTE

        intent = self.navigation.consume(intent_key)
        if intent is not None and _path_only(intent.path) != path:
            return intent.path

        if path is None or path in AUTH_ENTRY_PATHS:
            return landing_route_for(outcome.is_admin)
        return None
