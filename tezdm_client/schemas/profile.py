"""Schemas for OAuth platform and connected-account endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from tezdm_client.models import GroupId

TOKEN_AVAILABLE = "token_available"


class Platform(BaseModel):
    id: int
    platform_type: str


class OAuthUrl(BaseModel):
    url: str


class OAuthStatus(BaseModel):
    """Server-side progress of an out-of-band authorization."""

    state: str = Field(..., description="Either 'pending' or 'token_available'.")

    @property
    def token_available(self) -> bool:
        return self.state == TOKEN_AVAILABLE


class ConnectedAccount(BaseModel):
    id: int
    platform: str
    name: str = ""
    state: str = ""
    creation_date: Optional[str] = None
    tag: Optional[str] = None
    uuid: Optional[str] = None
    profile_link: Optional[str] = None
    group: Optional[GroupId] = None


class OAuthRedirectPayload(BaseModel):
    """Payload sent to complete the OAuth redirect exchange."""

    code: str = Field(..., description="Authorization code returned by the platform.")
    state: str = Field(..., description="Opaque '<group>_<platform>' state token.")


class ConnectionRequest(BaseModel):
    platform_id: int
    platform_name: str


__all__ = [
    "ConnectedAccount",
    "ConnectionRequest",
    "OAuthRedirectPayload",
    "OAuthStatus",
    "OAuthUrl",
    "Platform",
    "TOKEN_AVAILABLE",
]
