"""
Domain models for credential persistence.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Union

from pydantic import BaseModel, Field

GroupId = Union[int, str]


class TokenSet(BaseModel):
    """Final, group-scoped tokens held by the credential store."""

    access_token: str
    refresh_token: str
    expires_at: datetime = Field(
        ..., description="Expiry derived from the access token's exp claim."
    )
    group_id: GroupId


class StoredRecord(BaseModel):
    """Integrity envelope wrapped around every persisted credential record."""

    data: Any
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str
    checksum: str
    encrypted: bool = False


__all__ = ["GroupId", "StoredRecord", "TokenSet"]
