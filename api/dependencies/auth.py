from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
from database.db import SessionLocal
from database.models.user_model import UserProfile
from clients.identity_client import IdentityClaims, IdentityProviderClient
from clients.storage_client import LocalObjectStorage
from services.exceptions import AuthenticationError, PermissionDeniedError
from services.navigation import NavigationIntentStore
from services.session_orchestrator import SessionOrchestrator
from services.user_service import get_profile, is_admin_user
import logging
import os

logger = logging.getLogger(__name__)

SESSION_COOKIE = "portal_session"
NAV_COOKIE = "portal_nav"
IS_PRODUCTION = os.getenv("APP_ENV", "local") != "local"


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Singletons are built once in api/main.py and hung on app.state
def get_identity_client(request: Request) -> IdentityProviderClient:
    return request.app.state.identity_client


def get_storage(request: Request) -> LocalObjectStorage:
    return request.app.state.storage


def get_navigation(request: Request) -> NavigationIntentStore:
    return request.app.state.navigation


def get_orchestrator(request: Request) -> SessionOrchestrator:
    return request.app.state.orchestrator


def get_session_tokens(request: Request) -> List[str]:
    """Candidate tokens in the order they are tried: session cookie, then Bearer header."""
    tokens = []
    cookie_token = request.cookies.get(SESSION_COOKIE)
    if cookie_token:
        tokens.append(cookie_token)
    # Authorization header for API clients and freshly refreshed tokens
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        header_token = auth_header.split(" ", 1)[1].strip()
        if header_token and header_token not in tokens:
            tokens.append(header_token)
    return tokens


def resolve_session(
    request: Request, identity: IdentityProviderClient
) -> Tuple[Optional[str], Optional[IdentityClaims]]:
    """
    Returns the first candidate token that verifies and its claims, or
    (None, None). A stale cookie does not hide a valid Bearer token.
    Blocking in JWKS mode; call from a worker thread.
    """
    for token in get_session_tokens(request):
        try:
            return token, identity.verify_id_token(token)
        except AuthenticationError:
            logger.info("Ignoring invalid or expired session token")
    return None, None


def set_session_cookie(response: Response, id_token: str, max_age: int = 3600) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=id_token,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="lax",
        max_age=max_age,
        path="/"
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/")


def set_nav_cookie(response: Response, key: str, max_age: int) -> None:
    response.set_cookie(
        key=NAV_COOKIE,
        value=key,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="lax",
        max_age=max_age,
        path="/"
    )


def clear_nav_cookie(response: Response) -> None:
    response.delete_cookie(NAV_COOKIE, path="/")


# Plain def: FastAPI runs these in its threadpool, verification may fetch JWKS
def get_optional_claims(
    request: Request,
    identity: IdentityProviderClient = Depends(get_identity_client),
) -> Optional[IdentityClaims]:
    """Claims of the caller, or None when there is no valid session."""
    _, claims = resolve_session(request, identity)
    return claims


def get_current_claims(
    request: Request,
    identity: IdentityProviderClient = Depends(get_identity_client),
) -> IdentityClaims:
    tokens = get_session_tokens(request)
    if not tokens:
        raise AuthenticationError("Not authenticated")
    error = None
    for token in tokens:
        try:
            return identity.verify_id_token(token)
        except AuthenticationError as e:
            error = e
    raise error


async def get_current_user(
    claims: IdentityClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> UserProfile:
    user = get_profile(db, claims.uid)
    if user is None:
        raise AuthenticationError("Your profile has not been set up yet. Please sign in again.")
    return user


async def get_optional_user(
    claims: Optional[IdentityClaims] = Depends(get_optional_claims),
    db: Session = Depends(get_db),
) -> Optional[UserProfile]:
    if claims is None:
        return None
    return get_profile(db, claims.uid)


async def get_current_admin(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if not is_admin_user(user):
        raise PermissionDeniedError("Administrator access required.")
    return user
