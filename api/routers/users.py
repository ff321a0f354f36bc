# api/routers/users.py
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional
import asyncio
import logging

from api.dependencies.auth import (
    get_current_admin,
    get_current_user,
    get_db,
    get_identity_client,
    resolve_session,
)
from api.models.user_models import (
    AdminFlagRequest,
    AvailabilityResponse,
    ProfileUpdateRequest,
    UserResponse,
)
from clients.identity_client import IdentityProviderClient
from database.models.user_model import UserProfile
from services import user_service
from services.exceptions import PortalError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def read_me(user: UserProfile = Depends(get_current_user)):
    return UserResponse.from_profile(user)


@router.put("/me", response_model=UserResponse)
async def update_me(
    body: ProfileUpdateRequest,
    request: Request,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
    identity: IdentityProviderClient = Depends(get_identity_client),
):
    changes = body.model_dump(exclude_unset=True)
    try:
        profile = user_service.update_profile(db, user.id, changes)
    except PortalError:
        raise
    except Exception as e:
        logger.error(f"Profile update failed for {user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update profile")

    # Keep the provider's display name in step; the profile row is authoritative
    if changes.get("display_name"):
        token, _ = await asyncio.to_thread(resolve_session, request, identity)
        if token:
            try:
                await asyncio.to_thread(identity.update_display_name, token, changes["display_name"])
            except PortalError as e:
                logger.warning(f"Provider display name not updated for {user.id}: {e.message}")

    return UserResponse.from_profile(profile)


@router.get("/check-username", response_model=AvailabilityResponse)
async def check_username(
    username: str = Query(..., min_length=1),
    exclude_uid: Optional[str] = None,
    db: Session = Depends(get_db),
):
    taken = user_service.is_username_taken(db, username.strip(), exclude_uid=exclude_uid)
    return AvailabilityResponse(
        is_taken=taken,
        message="Username already taken. Please choose another one." if taken else None,
    )


@router.get("/check-phone", response_model=AvailabilityResponse)
async def check_phone(
    phone_number: str = Query(..., min_length=1),
    exclude_uid: Optional[str] = None,
    db: Session = Depends(get_db),
):
    taken = user_service.is_phone_taken(db, phone_number.strip(), exclude_uid=exclude_uid)
    return AvailabilityResponse(
        is_taken=taken,
        message="Phone number already in use. Please use a different one." if taken else None,
    )


@router.get("/", response_model=List[UserResponse])
async def list_users(
    admin: UserProfile = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return [UserResponse.from_profile(u) for u in user_service.list_users(db)]


@router.put("/{uid}/admin", response_model=UserResponse)
async def set_admin(
    uid: str,
    body: AdminFlagRequest,
    request: Request,
    admin: UserProfile = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    ip_address = request.client.host if request.client else None
    target = user_service.set_admin_flag(db, admin, uid, body.is_admin, ip_address=ip_address)
    logger.info(f"Admin flag for {uid} set to {body.is_admin} by {admin.id}")
    return UserResponse.from_profile(target)
