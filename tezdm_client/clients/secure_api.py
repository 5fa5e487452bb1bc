"""
Authenticated API access with silent token refresh.

A refresh that cannot complete clears the credential store and publishes the
``auth:logout`` event so the session state machine resets itself.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

from tezdm_client.core.config import ApiSettings
from tezdm_client.core.errors import (
    AuthenticationFailedError,
    AuthenticationRequiredError,
    TezDMError,
)
from tezdm_client.models import TokenSet
from tezdm_client.services.events import LOGOUT
from tezdm_client.utils.http import build_client, request_envelope

if TYPE_CHECKING:
    from tezdm_client.clients.auth_gateway import AuthGatewayClient
    from tezdm_client.services.credential_store import CredentialStore
    from tezdm_client.services.events import EventBus

logger = logging.getLogger(__name__)


class SecureApiClient:
    """Send bearer-authenticated requests, refreshing the access token when needed."""

    def __init__(
        self,
        settings: ApiSettings,
        credential_store: CredentialStore,
        gateway: AuthGatewayClient,
        event_bus: EventBus,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._store = credential_store
        self._gateway = gateway
        self._events = event_bus
        self._transport = transport
        self._refresh_task: Optional[asyncio.Task[Optional[str]]] = None

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Return the envelope ``data`` of an authenticated call."""
        access_token = self._store.get_valid_access_token()
        if not access_token:
            access_token = await self.refresh_access_token()
            if not access_token:
                raise AuthenticationRequiredError()

        try:
            return await self._send(method, endpoint, access_token, params, json)
        except AuthenticationFailedError:
            refreshed = await self.refresh_access_token()
            if not refreshed:
                raise
            return await self._send(method, endpoint, refreshed, params, json)

    async def _send(
        self,
        method: str,
        endpoint: str,
        access_token: str,
        params: Optional[Dict[str, Any]],
        json: Optional[Dict[str, Any]],
    ) -> Any:
        async with build_client(
            self._settings, transport=self._transport, access_token=access_token
        ) as client:
            return await request_envelope(
                client,
                method,
                endpoint,
                params=params,
                json=json,
                authenticated=True,
            )

    async def refresh_access_token(self) -> Optional[str]:
        """Refresh once for all concurrent callers; ``None`` means the session ended."""
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._perform_refresh())
        return await asyncio.shield(self._refresh_task)

    async def _perform_refresh(self) -> Optional[str]:
        tokens = self._store.get_tokens()
        if tokens is None:
            logger.warning("No stored tokens available for refresh")
            self._force_logout("no_tokens")
            return None

        # Opaque refresh tokens carry no expiry; only a readable, past exp is final.
        refresh_expiry = self._store.get_token_expiry(tokens.refresh_token)
        if refresh_expiry is not None and self._store.is_token_expired(tokens.refresh_token):
            logger.warning("Refresh token is expired")
            self._force_logout("refresh_token_expired")
            return None

        try:
            pair = await self._gateway.refresh_token_with_group(
                tokens.refresh_token, tokens.group_id
            )
            stored = self._store.store_tokens(
                TokenSet(
                    access_token=pair.access_token,
                    refresh_token=pair.refresh_token,
                    expires_at=tokens.expires_at,
                    group_id=tokens.group_id,
                )
            )
        except TezDMError as exc:
            logger.warning("Token refresh failed: %s", exc.message)
            self._force_logout("token_refresh_failed")
            return None

        logger.info("Access token refreshed")
        return stored.access_token

    def _force_logout(self, reason: str) -> None:
        self._store.clear_all_data()
        self._events.publish(LOGOUT, reason=reason)


__all__ = ["SecureApiClient"]
