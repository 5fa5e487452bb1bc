"""Schemas for the authentication gateway and session endpoints."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field

from tezdm_client.models import GroupId


class ApiEnvelope(BaseModel):
    """Envelope wrapped around every remote API response."""

    status: int
    message: str = ""
    data: Any = None


class TokenPair(BaseModel):
    """Access/refresh pair returned by OTP validation, login and refresh."""

    access_token: str
    refresh_token: str
    group: Optional[GroupId] = Field(
        None, description="Group the pair is scoped to, when the server says so."
    )


class Group(BaseModel):
    id: GroupId
    name: str = ""
    description: str = ""


class GroupMembership(BaseModel):
    id: GroupId
    user: str = ""
    role: str = ""
    permissions: List[str] = Field(default_factory=list)
    user_name: Optional[str] = None


class OtpRequest(BaseModel):
    email: str = Field(..., description="Address the one-time passcode is sent to.")


class OtpVerifyRequest(BaseModel):
    email: str
    code: str = Field(..., description="One-time passcode received by email.")


class LoginRequest(BaseModel):
    email: str
    password: str


class SignupRequest(BaseModel):
    name: str
    email: str
    password: str


class PasswordResetRequest(BaseModel):
    """Fields carried by a password-reset link plus the new password."""

    email: str
    password: str
    confirm_password: str
    otp_token: str
    hmac_signature: str


class UserUpdateRequest(BaseModel):
    """Partial profile update; omitted fields are left untouched."""

    name: Optional[str] = None
    avatar: Optional[str] = None
    plan: Optional[str] = None
    notifications: Optional[bool] = None


__all__ = [
    "ApiEnvelope",
    "Group",
    "GroupMembership",
    "LoginRequest",
    "OtpRequest",
    "OtpVerifyRequest",
    "PasswordResetRequest",
    "SignupRequest",
    "TokenPair",
    "UserUpdateRequest",
]
