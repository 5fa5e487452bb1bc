"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_auth_gateway,
    get_connection_manager,
    get_credential_cipher,
    get_credential_store,
    get_event_bus,
    get_profile_client,
    get_redirect_resolver,
    get_secure_api,
    get_session,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_auth_gateway",
    "get_connection_manager",
    "get_credential_cipher",
    "get_credential_store",
    "get_event_bus",
    "get_profile_client",
    "get_redirect_resolver",
    "get_secure_api",
    "get_session",
]
