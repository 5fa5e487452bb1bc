"""
One-shot completion of the browser's return from a third-party OAuth page.

The provider redirects back with ``code`` and ``state``; the state token has
the form ``<group_id>_<platform_id>``. Resolution is keyed by the
``(code, state)`` pair so a replayed landing shares the first outcome instead
of replaying the authorization code.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Optional, Tuple

from tezdm_client.core.errors import (
    MalformedStateError,
    MissingParameterError,
    TezDMError,
)
from tezdm_client.services.connection_poller import Sleep
from tezdm_client.services.session import AUTOMATIONS_ROUTE

if TYPE_CHECKING:
    from tezdm_client.clients.profile_api import ProfileClient

logger = logging.getLogger(__name__)

LOGIN_ROUTE = "/login"
CONNECTED_MESSAGE = "Account connected successfully!"
LOGIN_NOTICE = (
    "Profile has been added to TezDM! "
    "Login to your TezDM account to setup DM automation."
)

Navigate = Callable[[str, Optional[str]], None]


class RedirectStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class RedirectOutcome:
    status: RedirectStatus
    message: str
    redirect_to: Optional[str] = None
    notice: Optional[str] = None
    exception: Optional[TezDMError] = None

    @property
    def error(self) -> Optional[str]:
        return self.message if self.status is RedirectStatus.ERROR else None


def parse_state(state: str) -> Tuple[str, str]:
    """Split ``state`` into ``(group_id, platform_id)``."""
    parts = state.split("_")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise MalformedStateError()
    return parts[0], parts[1]


class OAuthRedirectResolver:
    """Exchange ``code`` and ``state`` for a connected account exactly once."""

    def __init__(
        self,
        profile_client: ProfileClient,
        is_authenticated: Callable[[], bool],
        *,
        redirect_delay_seconds: float = 2.0,
        navigate: Optional[Navigate] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._profiles = profile_client
        self._is_authenticated = is_authenticated
        self._delay = redirect_delay_seconds
        self._navigate = navigate
        self._sleep = sleep
        self._exchanges: Dict[Tuple[str, str], asyncio.Future[RedirectOutcome]] = {}
        self._navigation: Optional[asyncio.Task[None]] = None

    async def resolve(self, code: Optional[str], state: Optional[str]) -> RedirectOutcome:
        key = (code or "", state or "")
        exchange = self._exchanges.get(key)
        if exchange is None:
            exchange = asyncio.ensure_future(self._exchange(*key))
            self._exchanges[key] = exchange
        return await asyncio.shield(exchange)

    async def _exchange(self, code: str, state: str) -> RedirectOutcome:
        try:
            if not code or not state:
                raise MissingParameterError()
            group_id, platform_id = parse_state(state)
            await self._profiles.complete_oauth_redirect(code, state)
        except TezDMError as exc:
            logger.warning("OAuth redirect failed: %s", exc.message)
            return RedirectOutcome(
                status=RedirectStatus.ERROR, message=exc.message, exception=exc
            )

        logger.info(
            "OAuth redirect completed",
            extra={"group_id": group_id, "platform_id": platform_id},
        )
        if self._is_authenticated():
            outcome = RedirectOutcome(
                status=RedirectStatus.SUCCESS,
                message=CONNECTED_MESSAGE,
                redirect_to=AUTOMATIONS_ROUTE,
            )
        else:
            outcome = RedirectOutcome(
                status=RedirectStatus.SUCCESS,
                message=CONNECTED_MESSAGE,
                redirect_to=LOGIN_ROUTE,
                notice=LOGIN_NOTICE,
            )
        if self._navigate is not None:
            self.cancel_pending_navigation()
            self._navigation = asyncio.ensure_future(self._navigate_later(outcome))
            self._navigation.add_done_callback(self._log_navigation_failure)
        return outcome

    async def _navigate_later(self, outcome: RedirectOutcome) -> None:
        await self._sleep(self._delay)
        if self._navigate is not None and outcome.redirect_to is not None:
            self._navigate(outcome.redirect_to, outcome.notice)

    @staticmethod
    def _log_navigation_failure(task: asyncio.Future[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Post-redirect navigation failed", exc_info=exc)

    @property
    def navigation_pending(self) -> bool:
        return self._navigation is not None and not self._navigation.done()

    def cancel_pending_navigation(self) -> None:
        if self._navigation is not None and not self._navigation.done():
            self._navigation.cancel()
        self._navigation = None


__all__ = [
    "CONNECTED_MESSAGE",
    "LOGIN_NOTICE",
    "LOGIN_ROUTE",
    "OAuthRedirectResolver",
    "RedirectOutcome",
    "RedirectStatus",
    "parse_state",
]
