# File: api/models/session_models.py
from typing import List, Optional

from pydantic import BaseModel, Field

from api.models.user_models import UserResponse


class SessionSyncRequest(BaseModel):
    current_path: Optional[str] = None


class NavigationIntentRequest(BaseModel):
    path: str = Field(..., min_length=1)


class NavigationIntentResponse(BaseModel):
    path: str


class SessionResponse(BaseModel):
    authenticated: bool = False
    user: Optional[UserResponse] = None
    is_admin: bool = False
    profile_complete: bool = False
    completing_profile: bool = False
    redirect_to: Optional[str] = None
    signed_out: bool = False
    notices: List[str] = Field(default_factory=list)

    @classmethod
    def from_outcome(cls, outcome) -> "SessionResponse":
        return cls(
            authenticated=outcome.authenticated,
            user=UserResponse.from_profile(outcome.user) if outcome.user is not None else None,
            is_admin=outcome.is_admin,
            profile_complete=outcome.profile_complete,
            completing_profile=outcome.completing_profile,
            redirect_to=outcome.redirect_to,
            signed_out=outcome.signed_out,
            notices=list(outcome.notices),
        )
