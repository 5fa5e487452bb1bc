"""Domain models."""

from .credentials import GroupId, StoredRecord, TokenSet
from .user import ConnectedAccountSummary, UserProfile

__all__ = [
    "ConnectedAccountSummary",
    "GroupId",
    "StoredRecord",
    "TokenSet",
    "UserProfile",
]
