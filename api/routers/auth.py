from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session
from api.dependencies.auth import NAV_COOKIE, get_db, get_identity_client, get_orchestrator, set_session_cookie
from api.models.session_models import SessionResponse
from api.models.user_models import LoginRequest, PasswordResetRequest, SignupRequest
from api.routers.session import apply_outcome
from clients.identity_client import IdentityProviderClient
from services import user_service
from services.exceptions import ConflictError, PortalError
from services.session_orchestrator import SessionOrchestrator
from utils.sanitization import hash_email
import asyncio
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=SessionResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    identity: IdentityProviderClient = Depends(get_identity_client),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """
    Email-or-username + password login through the identity provider.
    Sets the session cookie and returns the session outcome.
    """
    try:
        email = user_service.resolve_login_email(db, body.identifier)
        provider_session = await asyncio.to_thread(identity.sign_in_with_password, email, body.password)
        claims = identity.verify_id_token(provider_session.id_token)

        outcome = orchestrator.handle_session_event(
            db, claims, current_path="/login", intent_key=request.cookies.get(NAV_COOKIE)
        )
        if not outcome.signed_out:
            set_session_cookie(response, provider_session.id_token, provider_session.expires_in)
        logger.info(f"USER_LOGIN user_id={claims.uid}")
        return apply_outcome(response, outcome)
    except PortalError:
        raise
    except Exception as e:
        logger.error(f"Login failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="An unknown error occurred during login.")


@router.post("/signup", response_model=SessionResponse, status_code=201)
async def signup(
    body: SignupRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    identity: IdentityProviderClient = Depends(get_identity_client),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    try:
        # Checked before creating the provider account
        if user_service.is_username_taken(db, body.username):
            raise ConflictError("Username already taken. Please choose another one.")
        if user_service.is_phone_taken(db, body.phone_number):
            raise ConflictError("Phone number already in use. Please use a different one.")

        provider_session = await asyncio.to_thread(
            identity.sign_up, body.email, body.password, body.full_name
        )
        claims = identity.verify_id_token(provider_session.id_token)
        if not claims.display_name:
            claims.display_name = body.full_name

        user_service.create_profile_from_claims(
            db,
            claims,
            orchestrator.bootstrap_admin_emails,
            extra={
                "display_name": body.full_name,
                "username": body.username,
                "role": body.role,
                "phone_number": body.phone_number,
                "institution": body.institution,
                "researcher_id": body.researcher_id,
            },
        )
        logger.info(f"USER_SIGNUP user_id={claims.uid} email={hash_email(body.email)}")

        outcome = orchestrator.handle_session_event(
            db, claims, current_path="/signup", intent_key=request.cookies.get(NAV_COOKIE)
        )
        if not outcome.signed_out:
            set_session_cookie(response, provider_session.id_token, provider_session.expires_in)
        return apply_outcome(response, outcome)
    except PortalError:
        raise
    except Exception as e:
        logger.error(f"Signup failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="An unknown error occurred during signup.")


@router.post("/password-reset")
async def password_reset(
    body: PasswordResetRequest,
    identity: IdentityProviderClient = Depends(get_identity_client),
):
    await asyncio.to_thread(identity.send_password_reset_email, body.email)
    logger.info(f"Password reset requested for {hash_email(body.email)}")
    return {"message": "Password reset email sent. Please check your inbox."}
