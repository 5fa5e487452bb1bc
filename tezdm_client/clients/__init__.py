"""Expose constructed client wrappers."""

from .auth_gateway import AuthGatewayClient
from .profile_api import ProfileClient
from .secure_api import SecureApiClient
from .sqlite_store import SQLiteKeyValueStore

__all__ = [
    "AuthGatewayClient",
    "ProfileClient",
    "SQLiteKeyValueStore",
    "SecureApiClient",
]
