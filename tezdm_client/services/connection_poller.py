"""
Background detection of an out-of-band OAuth authorization.

A :class:`ConnectionPoller` runs two tasks under one cancellation scope: a
status task that asks the profile service whether the attempt's state token
has been exchanged, and a countdown task that bounds the whole attempt.
Terminal states are absorbing; results landing after one are discarded.
"""

from __future__ import annotations

import asyncio
import math
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional
from urllib.parse import parse_qs, urlsplit

from tezdm_client.core.errors import TezDMError
from tezdm_client.services.events import ACCOUNT_CONNECTED

if TYPE_CHECKING:
    from tezdm_client.clients.profile_api import ProfileClient
    from tezdm_client.services.events import EventBus

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300

Sleep = Callable[[float], Awaitable[None]]


class PollStatus(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in (PollStatus.SUCCESS, PollStatus.ERROR, PollStatus.TIMEOUT)


def extract_state_token(oauth_url: str) -> Optional[str]:
    """Return the ``state`` query parameter of an absolute URL, if present."""
    try:
        parts = urlsplit(oauth_url)
    except ValueError:
        logger.warning("Failed to parse OAuth URL")
        return None
    if not parts.scheme or not parts.netloc:
        logger.warning("OAuth URL is not absolute")
        return None
    values = parse_qs(parts.query).get("state")
    return values[0] if values else None


@dataclass
class ConnectionAttempt:
    """One user-initiated attempt to link a social account."""

    platform_name: str
    oauth_url: str
    remaining_seconds: float = DEFAULT_TIMEOUT_SECONDS
    poll_status: PollStatus = PollStatus.IDLE
    last_error: Optional[str] = None
    closed: bool = False
    state_token: Optional[str] = field(init=False, default=None)

    def __post_init__(self) -> None:
        self.state_token = extract_state_token(self.oauth_url)


class ConnectionPoller:
    """Drive a :class:`ConnectionAttempt` from ``idle`` to a terminal state."""

    def __init__(
        self,
        attempt: ConnectionAttempt,
        status_client: ProfileClient,
        event_bus: EventBus,
        *,
        poll_interval_seconds: float = 1.0,
        success_grace_seconds: float = 2.0,
        on_success: Optional[Callable[[], None]] = None,
        on_back_to_platforms: Optional[Callable[[], None]] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._attempt = attempt
        self._client = status_client
        self._events = event_bus
        self._interval = poll_interval_seconds
        self._grace = success_grace_seconds
        self._on_success = on_success
        self._on_back_to_platforms = on_back_to_platforms
        self._sleep = sleep

        self._tasks: List[asyncio.Task[None]] = []
        self._timeout_ticks = self._ticks_for(attempt.remaining_seconds)
        self._notified = False
        self._settled = asyncio.Event()

    @property
    def attempt(self) -> ConnectionAttempt:
        return self._attempt

    @property
    def poll_status(self) -> PollStatus:
        return self._attempt.poll_status

    @property
    def remaining_seconds(self) -> float:
        return self._attempt.remaining_seconds

    def start(self) -> bool:
        """Enter ``polling`` and launch both tasks; requires a state token."""
        attempt = self._attempt
        if attempt.closed or attempt.poll_status is not PollStatus.IDLE:
            return False
        if not attempt.state_token:
            logger.warning(
                "OAuth URL carries no state token; not polling",
                extra={"platform": attempt.platform_name},
            )
            self._settled.set()
            return False

        attempt.poll_status = PollStatus.POLLING
        attempt.last_error = None
        self._timeout_ticks = self._ticks_for(attempt.remaining_seconds)
        self._tasks = [
            asyncio.create_task(self._poll_status(attempt.state_token)),
            asyncio.create_task(self._count_down()),
        ]
        logger.info(
            "Polling OAuth status",
            extra={"platform": attempt.platform_name},
        )
        return True

    def cancel(self) -> None:
        """
        Abandon the attempt. Idempotent.

        During the post-success grace delay the connection notification is
        delivered at once, but the back-to-platforms callback is skipped.
        """
        if self._attempt.closed:
            return
        self._attempt.closed = True
        in_grace = self._attempt.poll_status is PollStatus.SUCCESS
        self._cancel_tasks()
        if in_grace:
            self._notify_connected()
        self._settled.set()

    async def wait(self) -> PollStatus:
        """Return the final status once the attempt has settled."""
        if self._attempt.poll_status is PollStatus.IDLE and not self._tasks:
            return self._attempt.poll_status
        await self._settled.wait()
        return self._attempt.poll_status

    # -- tasks ---------------------------------------------------------

    async def _poll_status(self, state_token: str) -> None:
        tick = 0
        while not self._attempt.closed:
            await self._sleep(self._interval)
            tick += 1
            try:
                status = await self._client.get_oauth_status(state_token)
            except TezDMError as exc:
                self._finish(PollStatus.ERROR, error=exc.message)
                return
            except Exception:
                logger.exception("OAuth status polling crashed")
                self._finish(PollStatus.ERROR, error="Polling failed")
                return

            if self._attempt.poll_status.is_terminal or self._attempt.closed:
                return
            if not status.token_available:
                continue
            # The countdown has expired by this tick even if its task has not run yet.
            if tick >= self._timeout_ticks:
                self._finish(PollStatus.TIMEOUT)
                return
            self._finish(PollStatus.SUCCESS)
            await self._complete_success()
            return

    def _ticks_for(self, seconds: float) -> int:
        if seconds <= 0:
            return 0
        return math.ceil(seconds / self._interval)

    async def _count_down(self) -> None:
        budget = self._attempt.remaining_seconds
        for tick in range(1, self._timeout_ticks + 1):
            await self._sleep(self._interval)
            self._attempt.remaining_seconds = max(0, budget - tick * self._interval)
        self._finish(PollStatus.TIMEOUT)

    async def _complete_success(self) -> None:
        await self._sleep(self._grace)
        if self._attempt.closed:
            return
        self._notify_connected()
        if self._on_back_to_platforms is not None:
            self._on_back_to_platforms()
        self._settled.set()

    # -- transitions ---------------------------------------------------

    def _finish(self, status: PollStatus, *, error: Optional[str] = None) -> None:
        attempt = self._attempt
        if attempt.poll_status.is_terminal or attempt.closed:
            return
        attempt.poll_status = status
        attempt.last_error = error
        self._cancel_tasks()
        if status is PollStatus.ERROR:
            logger.warning(
                "OAuth status polling failed: %s",
                error,
                extra={"platform": attempt.platform_name},
            )
        else:
            logger.info(
                "OAuth polling finished",
                extra={"platform": attempt.platform_name, "status": status.value},
            )
        if status is not PollStatus.SUCCESS:
            self._settled.set()

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()

    def _notify_connected(self) -> None:
        if self._notified:
            return
        self._notified = True
        self._events.publish(
            ACCOUNT_CONNECTED,
            platform_name=self._attempt.platform_name,
            state_token=self._attempt.state_token,
        )
        if self._on_success is not None:
            self._on_success()


__all__ = [
    "ConnectionAttempt",
    "ConnectionPoller",
    "DEFAULT_TIMEOUT_SECONDS",
    "PollStatus",
    "extract_state_token",
]
