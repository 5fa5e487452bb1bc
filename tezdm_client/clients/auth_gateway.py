"""
User-management (UMS) API client.

Covers the OTP login sequence, group-scoped token refresh, session
termination, and the legacy password flows.
"""

from __future__ import annotations

from typing import Any, List, Optional

import httpx

from tezdm_client.core.config import ApiSettings
from tezdm_client.models import GroupId
from tezdm_client.schemas import Group, GroupMembership, TokenPair
from tezdm_client.utils.http import (
    build_client,
    parse_list,
    parse_model,
    request_envelope,
)


class AuthGatewayClient:
    """Perform the remote calls needed to establish and end a session."""

    OTP_AUTHENTICATION = "/ums/auth/otp_authentication"
    REFRESH_TOKEN = "/ums/auth/refresh_token"
    SIGNOUT = "/ums/auth/signout"
    LOGIN = "/ums/auth/login"
    SIGNUP = "/ums/auth/signup"
    FORGOT_PASSWORD = "/ums/auth/forgot_password"
    RESET_PASSWORD = "/ums/auth/reset_password"
    GROUPS = "/ums/groups/"
    GROUP_MEMBERSHIPS = "/ums/group_memberships/"

    def __init__(
        self,
        settings: ApiSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    async def _call(
        self,
        method: str,
        endpoint: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        access_token: Optional[str] = None,
    ) -> Any:
        async with build_client(
            self._settings, transport=self._transport, access_token=access_token
        ) as client:
            return await request_envelope(
                client, method, endpoint, json=json, params=params
            )

    @staticmethod
    def _token_pair(data: Any) -> TokenPair:
        return parse_model(
            TokenPair, data, error_message="Incomplete token payload returned from server."
        )

    async def generate_otp(self, email: str) -> None:
        """Ask the server to email a one-time passcode."""
        await self._call("POST", self.OTP_AUTHENTICATION, json={"credential": email})

    async def validate_otp(self, email: str, code: str) -> TokenPair:
        """Exchange a passcode for an initial, group-less token pair."""
        data = await self._call(
            "POST",
            self.OTP_AUTHENTICATION,
            json={"credential": email, "otp": code},
        )
        return self._token_pair(data)

    async def get_groups(self, access_token: str) -> List[Group]:
        data = await self._call("GET", self.GROUPS, access_token=access_token)
        return parse_list(Group, data)

    async def get_group_memberships(
        self, access_token: str, group_id: GroupId
    ) -> List[GroupMembership]:
        data = await self._call(
            "GET",
            self.GROUP_MEMBERSHIPS,
            params={"group": group_id},
            access_token=access_token,
        )
        return parse_list(GroupMembership, data)

    async def refresh_token_with_group(
        self, refresh_token: str, group_id: GroupId
    ) -> TokenPair:
        """Trade a refresh token for a pair scoped to ``group_id``."""
        data = await self._call(
            "POST",
            self.REFRESH_TOKEN,
            json={"refresh_token": refresh_token, "group": group_id},
        )
        return self._token_pair(data)

    async def signout(self, refresh_token: str, group_id: GroupId) -> None:
        await self._call(
            "POST",
            self.SIGNOUT,
            json={"refresh_token": refresh_token, "group": group_id},
        )

    async def login(self, email: str, password: str) -> TokenPair:
        data = await self._call(
            "POST",
            self.LOGIN,
            json={
                "credential": email,
                "password": password,
                "confirm_password": password,
            },
        )
        return self._token_pair(data)

    async def signup(self, email: str, password: str, name: str) -> Optional[TokenPair]:
        """Register an account; returns tokens only when the server issues them."""
        data = await self._call(
            "POST",
            self.SIGNUP,
            json={"credential": email, "password": password, "name": name},
        )
        if isinstance(data, dict) and data.get("access_token"):
            return self._token_pair(data)
        return None

    async def forgot_password(self, email: str) -> None:
        await self._call("POST", self.FORGOT_PASSWORD, json={"credential": email})

    async def reset_password(
        self,
        *,
        password: str,
        confirm_password: str,
        otp_token: str,
        hmac_signature: str,
        email: str,
    ) -> None:
        await self._call(
            "POST",
            self.RESET_PASSWORD,
            json={
                "password": password,
                "confirm_password": confirm_password,
                "otp_token": otp_token,
                "hmac_signature_b64": hmac_signature,
                "credential": email,
            },
        )


__all__ = ["AuthGatewayClient"]
