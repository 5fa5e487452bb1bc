"""Public schema exports."""

from .auth import (
    ApiEnvelope,
    Group,
    GroupMembership,
    LoginRequest,
    OtpRequest,
    OtpVerifyRequest,
    PasswordResetRequest,
    SignupRequest,
    TokenPair,
    UserUpdateRequest,
)
from .profile import (
    TOKEN_AVAILABLE,
    ConnectedAccount,
    ConnectionRequest,
    OAuthRedirectPayload,
    OAuthStatus,
    OAuthUrl,
    Platform,
)

__all__ = [
    "ApiEnvelope",
    "ConnectedAccount",
    "ConnectionRequest",
    "Group",
    "GroupMembership",
    "LoginRequest",
    "OAuthRedirectPayload",
    "OAuthStatus",
    "OAuthUrl",
    "OtpRequest",
    "OtpVerifyRequest",
    "PasswordResetRequest",
    "Platform",
    "SignupRequest",
    "TOKEN_AVAILABLE",
    "TokenPair",
    "UserUpdateRequest",
]
