"""
User profile model mirrored into the credential store.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_AVATAR_URL = (
    "https://images.unsplash.com/photo-1472099645785-5658abf4ff4e"
    "?w=150&h=150&fit=crop&crop=face"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConnectedAccountSummary(BaseModel):
    """Short description of a linked social account."""

    id: str
    platform: str
    username: str
    is_primary: bool = False
    avatar: Optional[str] = None
    status: str = "connected"


class UserProfile(BaseModel):
    """Profile of the signed-in user."""

    id: str
    name: str
    email: str
    avatar: str = DEFAULT_AVATAR_URL
    plan: str = "free"
    notifications: bool = True
    connected_accounts: List[ConnectedAccountSummary] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    last_login: datetime = Field(default_factory=_utcnow)

    @field_validator("email")
    @classmethod
    def _require_at_sign(cls, value: str) -> str:
        if "@" not in value:
            raise ValueError("email must contain '@'")
        return value

    @classmethod
    def from_email(cls, email: str, *, name: Optional[str] = None) -> "UserProfile":
        """Synthesize a profile for a freshly authenticated email address."""
        return cls(
            id=email,
            email=email,
            name=name or email.split("@")[0],
            last_login=_utcnow(),
        )

    def merged(self, updates: dict) -> "UserProfile":
        """Return a validated copy with ``updates`` applied on top."""
        return type(self).model_validate({**self.model_dump(), **updates})


__all__ = ["ConnectedAccountSummary", "DEFAULT_AVATAR_URL", "UserProfile"]
