"""
Factory functions to provide the shared session, connection and redirect
services as FastAPI dependencies.

Every factory is cached so the whole process shares one credential store,
one event bus and one session.
"""

from functools import lru_cache

from tezdm_client.clients import (
    AuthGatewayClient,
    ProfileClient,
    SecureApiClient,
    SQLiteKeyValueStore,
)
from tezdm_client.core.config import get_settings
from tezdm_client.services import (
    ConnectionManager,
    CredentialCipher,
    CredentialStore,
    EventBus,
    OAuthRedirectResolver,
    SessionStateMachine,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_event_bus() -> EventBus:
    return EventBus()


@lru_cache()
def get_credential_cipher() -> CredentialCipher:
    """Provide the cipher protecting stored credentials."""
    settings = _settings()
    return CredentialCipher(secret=settings.security.token_encryption_secret)


@lru_cache()
def get_credential_store() -> CredentialStore:
    """Provide the process-wide credential store."""
    security = _settings().security
    return CredentialStore(
        SQLiteKeyValueStore(security.storage_path),
        get_credential_cipher(),
        max_data_age_seconds=security.max_data_age_seconds,
        token_refresh_threshold_seconds=security.token_refresh_threshold_seconds,
        security_logging=security.security_logging,
    )


@lru_cache()
def get_auth_gateway() -> AuthGatewayClient:
    return AuthGatewayClient(_settings().api)


@lru_cache()
def get_secure_api() -> SecureApiClient:
    """Provide the authenticated API client with silent token refresh."""
    return SecureApiClient(
        _settings().api,
        get_credential_store(),
        get_auth_gateway(),
        get_event_bus(),
    )


@lru_cache()
def get_profile_client() -> ProfileClient:
    return ProfileClient(get_secure_api(), _settings().api)


@lru_cache()
def get_session() -> SessionStateMachine:
    """Provide the session, reconciled with the credential store."""
    session = SessionStateMachine(
        get_auth_gateway(),
        get_credential_store(),
        get_event_bus(),
        profile_client=get_profile_client(),
        otp_length=_settings().otp_length,
    )
    session.start()
    return session


@lru_cache()
def get_connection_manager() -> ConnectionManager:
    return ConnectionManager(
        get_profile_client(),
        get_credential_store(),
        get_event_bus(),
        _settings().polling,
    )


@lru_cache()
def get_redirect_resolver() -> OAuthRedirectResolver:
    """Provide the redirect resolver; navigation is left to the HTTP caller."""
    session = get_session()
    return OAuthRedirectResolver(
        get_profile_client(),
        lambda: session.is_authenticated,
        redirect_delay_seconds=_settings().polling.redirect_delay_seconds,
    )


__all__ = [
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
