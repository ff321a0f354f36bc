# api/routers/session.py
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session
from typing import Optional
import asyncio
import logging

from api.dependencies.auth import (
    NAV_COOKIE,
    SESSION_COOKIE,
    clear_nav_cookie,
    clear_session_cookie,
    get_db,
    get_identity_client,
    get_navigation,
    get_orchestrator,
    resolve_session,
    set_nav_cookie,
    set_session_cookie,
)
from api.models.session_models import (
    NavigationIntentRequest,
    NavigationIntentResponse,
    SessionResponse,
    SessionSyncRequest,
)
from clients.identity_client import IdentityProviderClient
from services.exceptions import PortalError
from services.navigation import NAV_INTENT_TTL_SECONDS, NavigationIntentStore, new_intent_key
from services.session_orchestrator import SessionOrchestrator, SessionOutcome

logger = logging.getLogger(__name__)
router = APIRouter()


def apply_outcome(response: Response, outcome: SessionOutcome) -> SessionResponse:
    """Clears the session cookie when the orchestrator forced a sign-out."""
    if outcome.signed_out:
        clear_session_cookie(response)
    return SessionResponse.from_outcome(outcome)


@router.post("/sync", response_model=SessionResponse)
async def sync_session(
    request: Request,
    response: Response,
    body: Optional[SessionSyncRequest] = None,
    identity: IdentityProviderClient = Depends(get_identity_client),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    db: Session = Depends(get_db),
):
    """
    Reports the browser's current session state. Returns the profile,
    admin flag, completeness and the route to navigate to, if any.

    A session cookie that no longer verifies is cleared. When a fresh
    Bearer token verifies instead, it replaces the cookie.
    """
    current_path = body.current_path if body else None
    token, claims = await asyncio.to_thread(resolve_session, request, identity)
    cookie_token = request.cookies.get(SESSION_COOKIE)
    try:
        outcome = orchestrator.handle_session_event(
            db,
            claims,
            current_path=current_path,
            intent_key=request.cookies.get(NAV_COOKIE),
        )
        if claims is None and cookie_token:
            logger.info("Clearing stale session cookie")
            outcome.signed_out = True
        elif token and token != cookie_token and not outcome.signed_out:
            set_session_cookie(response, token)
        return apply_outcome(response, outcome)
    except PortalError:
        raise
    except Exception as e:
        logger.error(f"Session sync failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error during session sync")


@router.post("/intent", response_model=NavigationIntentResponse)
async def remember_intent(
    body: NavigationIntentRequest,
    request: Request,
    response: Response,
    navigation: NavigationIntentStore = Depends(get_navigation),
):
    key = request.cookies.get(NAV_COOKIE) or new_intent_key()
    intent = navigation.remember(key, body.path)
    set_nav_cookie(response, key, NAV_INTENT_TTL_SECONDS)
    return NavigationIntentResponse(path=intent.path)


@router.post("/logout", response_model=SessionResponse)
async def logout(
    request: Request,
    response: Response,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    outcome = orchestrator.sign_out(request.cookies.get(NAV_COOKIE))
    clear_nav_cookie(response)
    logger.info("USER_LOGOUT")
    return apply_outcome(response, outcome)
