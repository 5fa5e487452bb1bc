"""
Profile service client: OAuth platforms, OAuth status and connected accounts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List

import httpx

from tezdm_client.core.config import ApiSettings
from tezdm_client.models import GroupId
from tezdm_client.schemas import (
    ConnectedAccount,
    OAuthRedirectPayload,
    OAuthStatus,
    OAuthUrl,
    Platform,
)
from tezdm_client.utils.http import (
    build_client,
    parse_list,
    parse_model,
    request_envelope,
)

if TYPE_CHECKING:
    from tezdm_client.clients.secure_api import SecureApiClient


class ProfileClient:
    """Wrap the profile endpoints used while linking social accounts."""

    OAUTH_PLATFORMS = "/profile/oauth/"
    OAUTH_REDIRECT = "/profile/oauth/auth_redirection/"
    OAUTH_STATUS = "/profile/oauth/auth_redirection/status/"
    ACCOUNT_LISTING = "/profile/manage/listing/"

    def __init__(
        self,
        secure_api: SecureApiClient,
        settings: ApiSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api = secure_api
        self._settings = settings
        self._transport = transport

    async def get_oauth_platforms(self) -> List[Platform]:
        data = await self._api.request(
            "GET",
            self.OAUTH_PLATFORMS,
            params={"product_code": self._settings.product_code},
        )
        return parse_list(Platform, data)

    async def get_oauth_url(self, platform_id: int, group_id: GroupId) -> str:
        """Return the third-party authorization URL for ``platform_id``."""
        data = await self._api.request(
            "GET",
            f"{self.OAUTH_PLATFORMS}{platform_id}/",
            params={
                "group_id": group_id,
                "product_code": self._settings.product_code,
            },
        )
        return parse_model(OAuthUrl, data).url

    async def get_oauth_status(self, state: str) -> OAuthStatus:
        data = await self._api.request(
            "GET", self.OAUTH_STATUS, params={"state": state}
        )
        return parse_model(OAuthStatus, data)

    async def complete_oauth_redirect(self, code: str, state: str) -> Any:
        """
        Exchange the authorization ``code`` for a connected account.

        The browser may land here without a session, so the call is sent
        without a bearer token.
        """
        payload = OAuthRedirectPayload(code=code, state=state)
        async with build_client(self._settings, transport=self._transport) as client:
            return await request_envelope(
                client,
                "POST",
                self.OAUTH_REDIRECT,
                params={"product_code": self._settings.product_code},
                json=payload.model_dump(),
                error_message="OAuth completion failed",
            )

    async def get_connected_accounts(
        self, group_id: GroupId, page: int = 1
    ) -> List[ConnectedAccount]:
        data = await self._api.request(
            "GET",
            self.ACCOUNT_LISTING,
            params={"group_id": group_id, "page": page},
        )
        return parse_list(ConnectedAccount, data)

    async def delete_connected_account(
        self, account_id: int, group_id: GroupId
    ) -> None:
        await self._api.request(
            "DELETE",
            f"{self.ACCOUNT_LISTING}{account_id}/",
            params={"group_id": group_id},
        )


__all__ = ["ProfileClient"]
