# File: services/user_service.py

import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clients.identity_client import IdentityClaims
from database.models.user_model import UserProfile, UserRole
from services import audit_service
from services.exceptions import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    translate_db_error,
)
from utils.sanitization import hash_email

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "User"

UPDATABLE_PROFILE_FIELDS = {
    "display_name",
    "username",
    "role",
    "phone_number",
    "institution",
    "researcher_id",
}


def load_bootstrap_admin_emails(raw: Optional[str] = None) -> Set[str]:
    raw = os.getenv("BOOTSTRAP_ADMIN_EMAILS", "") if raw is None else raw
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


# ------------------------------------------------------------
# PREDICATES
# ------------------------------------------------------------
def is_profile_complete(profile: Optional[UserProfile]) -> bool:
    if profile is None:
        return False
    return (
        profile.username is not None
        and profile.role is not None
        and profile.phone_number is not None
    )


def is_admin_user(profile: Optional[UserProfile]) -> bool:
    # Only a real boolean True counts; legacy "true"/1 values do not
    return profile is not None and getattr(profile, "is_admin", None) is True


def is_bootstrap_admin(email: Optional[str], bootstrap_admin_emails: Iterable[str]) -> bool:
    if not email:
        return False
    return email.strip().lower() in {e.lower() for e in bootstrap_admin_emails}


# ------------------------------------------------------------
# LOOKUPS
# ------------------------------------------------------------
def get_profile(db: Session, uid: str) -> Optional[UserProfile]:
    return db.query(UserProfile).filter(UserProfile.id == uid).first()


def require_profile(db: Session, uid: str) -> UserProfile:
    profile = get_profile(db, uid)
    if profile is None:
        raise NotFoundError("User not found")
    return profile


def is_username_taken(db: Session, username: str, exclude_uid: Optional[str] = None) -> bool:
    query = db.query(UserProfile.id).filter(UserProfile.username == username)
    if exclude_uid:
        query = query.filter(UserProfile.id != exclude_uid)
    return query.first() is not None


def is_phone_taken(db: Session, phone_number: str, exclude_uid: Optional[str] = None) -> bool:
    query = db.query(UserProfile.id).filter(UserProfile.phone_number == phone_number)
    if exclude_uid:
        query = query.filter(UserProfile.id != exclude_uid)
    return query.first() is not None


def resolve_login_email(db: Session, identifier: str) -> str:
    """
    Login accepts an email or a username. Usernames are resolved to the email
    the identity provider knows.
    """
    identifier = identifier.strip()
    if "@" in identifier:
        return identifier

    profile = db.query(UserProfile).filter(UserProfile.username == identifier).first()
    if profile is None:
        raise NotFoundError("User not found with this username. Check username or try logging in with email.")
    if not profile.email:
        raise InvalidInputError("User profile incomplete (missing email) for this username.")
    return profile.email


def list_users(db: Session) -> List[UserProfile]:
    return db.query(UserProfile).order_by(UserProfile.created_at.desc()).all()


# ------------------------------------------------------------
# WRITES
# ------------------------------------------------------------
def _commit(db: Session, context: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"{context} failed: {e}")
        raise translate_db_error(e) from e


def create_profile_from_claims(
    db: Session,
    claims: IdentityClaims,
    bootstrap_admin_emails: Iterable[str] = (),
    extra: Optional[Dict[str, Any]] = None,
) -> UserProfile:
    """
    Creates the profile row for a first-time identity.
    `extra` carries signup form fields (username, role, phone...) when known.
    """
    extra = extra or {}
    admin = is_bootstrap_admin(claims.email, bootstrap_admin_emails)

    role = extra.get("role")
    if role is None and admin:
        role = UserRole.ADMIN

    profile = UserProfile(
        id=claims.uid,
        email=claims.email,
        display_name=claims.display_name or extra.get("display_name") or DEFAULT_DISPLAY_NAME,
        photo_url=claims.photo_url,
        username=extra.get("username"),
        role=UserRole(role) if role else None,
        phone_number=extra.get("phone_number"),
        institution=extra.get("institution"),
        researcher_id=extra.get("researcher_id"),
        is_admin=admin,
    )
    db.add(profile)
    _commit(db, f"Profile creation for {claims.uid}")
    db.refresh(profile)

    logger.info(f"Created profile {profile.id} for {hash_email(claims.email)} (admin={admin})")
    return profile


def reconcile_identity(db: Session, profile: UserProfile, claims: IdentityClaims) -> List[str]:
    """
    Copies display name, photo and email drift from the identity provider into
    the stored profile. Returns the names of the fields that changed.
    """
    changed = []
    for attr, value in (
        ("display_name", claims.display_name),
        ("photo_url", claims.photo_url),
        ("email", claims.email),
    ):
        if value and getattr(profile, attr) != value:
            setattr(profile, attr, value)
            changed.append(attr)

    if changed:
        _commit(db, f"Profile reconciliation for {profile.id}")
        db.refresh(profile)
        logger.info(f"Reconciled {', '.join(changed)} for profile {profile.id}")
    return changed


def update_profile(db: Session, uid: str, changes: Dict[str, Any]) -> UserProfile:
    """
    Applies a partial profile update with username/phone uniqueness checks.
    Raises:
        InvalidInputError: unknown or protected fields (is_admin, email...).
        ConflictError: username or phone number used by another profile.
    """
    unknown = set(changes) - UPDATABLE_PROFILE_FIELDS
    if unknown:
        raise InvalidInputError(f"These fields cannot be changed here: {', '.join(sorted(unknown))}")
    if not changes:
        raise InvalidInputError("No update data provided")

    profile = require_profile(db, uid)

    username = changes.get("username")
    if username is not None and username != profile.username:
        if is_username_taken(db, username, exclude_uid=uid):
            raise ConflictError("Username already taken. Please choose another one.")

    if "phone_number" in changes:
        phone = changes["phone_number"]
        if phone in ("", None):
            changes["phone_number"] = None
        elif phone != profile.phone_number and is_phone_taken(db, phone, exclude_uid=uid):
            raise ConflictError("Phone number already in use. Please use a different one.")

    for attr, value in changes.items():
        if attr == "role" and value is not None:
            value = UserRole(value)
        setattr(profile, attr, value)

    _commit(db, f"Profile update for {uid}")
    db.refresh(profile)
    return profile


def set_admin_flag(
    db: Session,
    actor: UserProfile,
    target_uid: str,
    value: bool,
    ip_address: Optional[str] = None,
) -> UserProfile:
    if not is_admin_user(actor):
        raise PermissionDeniedError("Only administrators can change admin status.")
    if actor.id == target_uid:
        raise PermissionDeniedError("Admins cannot change their own admin status through this interface.")

    target = require_profile(db, target_uid)
    target.is_admin = bool(value)
    audit_service.log_action(
        db,
        user_id=actor.id,
        action=audit_service.TOGGLE_ADMIN,
        target_id=target_uid,
        payload={"is_admin": bool(value)},
        ip_address=ip_address,
    )
    _commit(db, f"Admin flag change for {target_uid}")
    db.refresh(target)
    return target
