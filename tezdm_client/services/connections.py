"""
Connected-account management and the single active connection attempt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, List, Optional

from tezdm_client.core.config import PollingSettings
from tezdm_client.core.errors import AuthenticationRequiredError
from tezdm_client.models import GroupId
from tezdm_client.schemas import ConnectedAccount, Platform
from tezdm_client.services.connection_poller import (
    ConnectionAttempt,
    ConnectionPoller,
    Sleep,
)
from tezdm_client.services.events import LOGOUT

if TYPE_CHECKING:
    from tezdm_client.clients.profile_api import ProfileClient
    from tezdm_client.services.credential_store import CredentialStore
    from tezdm_client.services.events import Event, EventBus

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Open connection attempts one at a time and manage linked accounts."""

    def __init__(
        self,
        profile_client: ProfileClient,
        credential_store: CredentialStore,
        event_bus: EventBus,
        polling: PollingSettings,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._profiles = profile_client
        self._store = credential_store
        self._events = event_bus
        self._polling = polling
        self._sleep = sleep
        self._poller: Optional[ConnectionPoller] = None
        self._unsubscribe_logout = event_bus.subscribe(LOGOUT, self._on_global_logout)

    @property
    def active_attempt(self) -> Optional[ConnectionAttempt]:
        return self._poller.attempt if self._poller is not None else None

    @property
    def active_poller(self) -> Optional[ConnectionPoller]:
        return self._poller

    def _group_id(self) -> GroupId:
        tokens = self._store.get_tokens()
        if tokens is None:
            raise AuthenticationRequiredError()
        return tokens.group_id

    async def list_platforms(self) -> List[Platform]:
        return await self._profiles.get_oauth_platforms()

    async def list_connected_accounts(self, page: int = 1) -> List[ConnectedAccount]:
        return await self._profiles.get_connected_accounts(self._group_id(), page)

    async def delete_connected_account(self, account_id: int) -> None:
        await self._profiles.delete_connected_account(account_id, self._group_id())
        logger.info("Deleted connected account", extra={"account_id": account_id})

    async def open_platform(
        self,
        platform_id: int,
        platform_name: str,
        *,
        on_success: Optional[Callable[[], None]] = None,
    ) -> ConnectionAttempt:
        """Fetch the platform's OAuth URL for the stored group and start polling."""
        oauth_url = await self._profiles.get_oauth_url(platform_id, self._group_id())
        return self.open(platform_name, oauth_url, on_success=on_success)

    def open(
        self,
        platform_name: str,
        oauth_url: str,
        *,
        on_success: Optional[Callable[[], None]] = None,
    ) -> ConnectionAttempt:
        """Replace any active attempt with a new one for ``oauth_url``."""
        self.close()
        attempt = ConnectionAttempt(
            platform_name=platform_name,
            oauth_url=oauth_url,
            remaining_seconds=self._polling.timeout_seconds,
        )
        poller = ConnectionPoller(
            attempt,
            self._profiles,
            self._events,
            poll_interval_seconds=self._polling.poll_interval_seconds,
            success_grace_seconds=self._polling.success_grace_seconds,
            on_success=on_success,
            on_back_to_platforms=lambda: self._release(attempt),
            sleep=self._sleep,
        )
        self._poller = poller
        poller.start()
        return attempt

    def close(self) -> None:
        """Cancel and forget the active attempt, if any."""
        poller, self._poller = self._poller, None
        if poller is not None:
            poller.cancel()

    def dispose(self) -> None:
        """Close the active attempt and stop listening for logouts."""
        self.close()
        self._unsubscribe_logout()

    def _on_global_logout(self, event: Event) -> None:
        if self._poller is not None:
            logger.info(
                "Abandoning connection attempt after logout",
                extra={"reason": event.payload.get("reason")},
            )
        self.close()

    def _release(self, attempt: ConnectionAttempt) -> None:
        if self._poller is not None and self._poller.attempt is attempt:
            self.close()


__all__ = ["ConnectionManager"]
