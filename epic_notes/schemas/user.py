"""
Output shapes for the settings pages (what a rendered page would show).
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: str
    name: Optional[str] = None
    created_at: datetime


class ConnectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    provider_name: str
    provider_id: str
    created_at: datetime


class ProfileOut(BaseModel):
    user: UserOut
    has_password: bool
    is_two_factor_enabled: bool
    session_count: int


class ConnectionListResponse(BaseModel):
    connections: list[ConnectionOut]
    can_delete_connections: bool


class TwoFactorStatusResponse(BaseModel):
    is_two_factor_enabled: bool


class TwoFactorSetupResponse(BaseModel):
    otp_uri: str
