"""
Typed payloads for every cookie the auth flows use.
Each cookie purpose gets its own model with an explicit field set, so a flow can
only read/write the keys that belong to it.
"""
from datetime import datetime
from typing import Literal, Optional
import uuid

from pydantic import BaseModel, Field


class SessionCookie(BaseModel):
    session_id: Optional[str] = None
    # Last time the user passed a 2FA check in this browser
    verified_time: Optional[datetime] = None
    # Persisted so re-commits keep the "remember me" expiry
    expires: Optional[datetime] = None


class ProviderProfile(BaseModel):
    """Profile data from an OAuth provider, stashed while the user finishes onboarding."""
    id: str
    email: str
    username: Optional[str] = None
    name: Optional[str] = None
    image_url: Optional[str] = None


class VerificationCookie(BaseModel):
    # 2FA login detour
    unverified_session_id: Optional[str] = None
    remember: bool = False
    # Onboarding (email signup or OAuth signup)
    onboarding_email: Optional[str] = None
    provider_id: Optional[str] = None
    provider_profile: Optional[ProviderProfile] = None
    # Password reset
    reset_password_username: Optional[str] = None
    # Change email
    new_email: Optional[str] = None


class ConnectionCookie(BaseModel):
    oauth_state: Optional[str] = None


class RedirectCookie(BaseModel):
    redirect_to: Optional[str] = None


class Toast(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: Literal["message", "success", "error"] = "message"
    title: Optional[str] = None
    description: str
