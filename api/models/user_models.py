# File: api/models/user_models.py
import re
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, StrictBool, field_validator, model_validator

from services.user_service import is_admin_user, is_profile_complete

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{4,20}$")
PHONE_PATTERN = re.compile(r"^\+?\d[\d\s-]{7,14}$")
RESEARCHER_ID_PATTERN = re.compile(r"(^\d{4}-\d{4}-\d{4}-\d{3}[\dX]$)|(^[a-zA-Z0-9]+$)")
PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Za-z])(?=.*\d).{8,}$")

SelectableRole = Literal["Author", "Reviewer"]


def _check_username(v: str) -> str:
    v = v.strip()
    if not USERNAME_PATTERN.match(v):
        raise ValueError("Username must be 4-20 characters and can only contain letters, numbers, and underscores.")
    return v


def _check_phone(v: str) -> str:
    v = v.strip()
    if not PHONE_PATTERN.match(v):
        raise ValueError("Invalid phone number format (e.g., +1-123-456-7890 or +91 9876543210).")
    return v


def _check_optional_text(v: Optional[str], min_len: int, message: str) -> Optional[str]:
    if v is None or not v.strip():
        return None
    v = v.strip()
    if len(v) < min_len:
        raise ValueError(message)
    return v


def _check_researcher_id(v: Optional[str]) -> Optional[str]:
    if v is None or not v.strip():
        return None
    v = v.strip()
    if not RESEARCHER_ID_PATTERN.match(v):
        raise ValueError("Invalid Researcher ID or ORCID format (e.g., 0000-0001-2345-6789 or alphanumeric).")
    return v


class ProfileUpdateRequest(BaseModel):
    # No is_admin or email here; unknown keys are rejected
    model_config = ConfigDict(extra="forbid")

    display_name: Optional[str] = None
    username: Optional[str] = None
    role: Optional[SelectableRole] = None
    phone_number: Optional[str] = None
    institution: Optional[str] = None
    researcher_id: Optional[str] = None

    @field_validator("display_name")
    @classmethod
    def _display_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Full name must be at least 3 characters.")
        return v

    @field_validator("username")
    @classmethod
    def _username(cls, v: Optional[str]) -> Optional[str]:
        return _check_username(v) if v is not None else None

    @field_validator("phone_number")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        # An empty string clears the stored number
        if v is None or not v.strip():
            return v if v is None else ""
        return _check_phone(v)

    @field_validator("institution")
    @classmethod
    def _institution(cls, v: Optional[str]) -> Optional[str]:
        return _check_optional_text(v, 2, "Institution must be at least 2 characters if provided.")

    @field_validator("researcher_id")
    @classmethod
    def _researcher_id(cls, v: Optional[str]) -> Optional[str]:
        return _check_researcher_id(v)


class SignupRequest(BaseModel):
    full_name: str
    username: str
    email: EmailStr
    confirm_email: EmailStr
    password: str
    confirm_password: str
    phone_number: str
    institution: Optional[str] = None
    role: SelectableRole
    researcher_id: Optional[str] = None
    terms_accepted: bool = False

    @field_validator("full_name")
    @classmethod
    def _full_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Full name must be at least 3 characters.")
        return v

    @field_validator("username")
    @classmethod
    def _username(cls, v: str) -> str:
        return _check_username(v)

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        if not PASSWORD_PATTERN.match(v):
            raise ValueError("Password must be at least 8 characters and include at least one letter and one number.")
        return v

    @field_validator("phone_number")
    @classmethod
    def _phone(cls, v: str) -> str:
        return _check_phone(v)

    @field_validator("institution")
    @classmethod
    def _institution(cls, v: Optional[str]) -> Optional[str]:
        return _check_optional_text(v, 2, "Institution must be at least 2 characters if provided.")

    @field_validator("researcher_id")
    @classmethod
    def _researcher_id(cls, v: Optional[str]) -> Optional[str]:
        return _check_researcher_id(v)

    @model_validator(mode="after")
    def _confirmations(self) -> "SignupRequest":
        if self.email.lower() != self.confirm_email.lower():
            raise ValueError("Email addresses do not match.")
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match.")
        if not self.terms_accepted:
            raise ValueError("You must accept the terms and conditions.")
        return self


class LoginRequest(BaseModel):
    identifier: str  # email or username
    password: str


class PasswordResetRequest(BaseModel):
    email: EmailStr


class AdminFlagRequest(BaseModel):
    is_admin: StrictBool


class AvailabilityResponse(BaseModel):
    is_taken: bool
    message: Optional[str] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    username: Optional[str] = None
    role: Optional[str] = None
    phone_number: Optional[str] = None
    institution: Optional[str] = None
    researcher_id: Optional[str] = None
    is_admin: bool = False
    profile_complete: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_profile(cls, profile) -> "UserResponse":
        role = profile.role.value if hasattr(profile.role, "value") else profile.role
        return cls(
            id=profile.id,
            email=profile.email,
            display_name=profile.display_name,
            photo_url=profile.photo_url,
            username=profile.username,
            role=role,
            phone_number=profile.phone_number,
            institution=profile.institution,
            researcher_id=profile.researcher_id,
            is_admin=is_admin_user(profile),
            profile_complete=is_profile_complete(profile),
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )
