try:
    from . import _bootstrap  # noqa: F401
    from ._factories import make_jwt, make_store
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _factories import make_jwt, make_store  # type: ignore

import asyncio
from datetime import datetime, timezone

import pytest

from tezdm_client.core.config import PollingSettings
from tezdm_client.core.errors import AuthenticationRequiredError
from tezdm_client.models import TokenSet, UserProfile
from tezdm_client.schemas import OAuthStatus, Platform
from tezdm_client.services.connection_poller import PollStatus
from tezdm_client.services.connections import ConnectionManager
from tezdm_client.services.events import LOGOUT, EventBus


class StubProfiles:
    def __init__(self, *, status: str = "pending") -> None:
        self.status = status
        self.status_calls: list[str] = []
        self.url_requests: list[tuple[int, object]] = []
        self.deleted: list[tuple[int, object]] = []

    async def get_oauth_platforms(self):
        return [Platform(id=1, platform_type="instagram")]

    async def get_oauth_url(self, platform_id: int, group_id) -> str:
        self.url_requests.append((platform_id, group_id))
        return f"https://platform.example/authorize?state={group_id}_{platform_id}"

    async def get_oauth_status(self, state: str) -> OAuthStatus:
        self.status_calls.append(state)
        return OAuthStatus(state=self.status)

    async def get_connected_accounts(self, group_id, page: int = 1):
        return []

    async def delete_connected_account(self, account_id: int, group_id) -> None:
        self.deleted.append((account_id, group_id))


async def _tick(_: float) -> None:
    await asyncio.sleep(0)


def _manager(tmp_path, profiles, *, signed_in: bool = True, bus=None) -> ConnectionManager:
    store = make_store(tmp_path)
    if signed_in:
        store.store_credentials(
            UserProfile.from_email("a@b.com"),
            TokenSet(
                access_token=make_jwt(),
                refresh_token="r",
                expires_at=datetime.now(timezone.utc),
                group_id="g1",
            ),
        )
    polling = PollingSettings(TEZDM_POLL_TIMEOUT=300, TEZDM_SUCCESS_GRACE=0.5)
    return ConnectionManager(profiles, store, bus or EventBus(), polling, sleep=_tick)


@pytest.mark.asyncio
async def test_open_platform_uses_stored_group(tmp_path) -> None:
    profiles = StubProfiles()
    manager = _manager(tmp_path, profiles)

    attempt = await manager.open_platform(3, "instagram")

    assert profiles.url_requests == [(3, "g1")]
    assert attempt.state_token == "g1_3"
    assert attempt.poll_status is PollStatus.POLLING
    assert manager.active_attempt is attempt
    manager.close()


@pytest.mark.asyncio
async def test_opening_a_new_attempt_cancels_the_previous_one(tmp_path) -> None:
    profiles = StubProfiles()
    manager = _manager(tmp_path, profiles)

    first = manager.open("instagram", "https://platform.example/a?state=FIRST")
    while not profiles.status_calls:
        await asyncio.sleep(0)
    second = manager.open("facebook", "https://platform.example/b?state=SECOND")
    first_calls = profiles.status_calls.count("FIRST")
    for _ in range(20):
        await asyncio.sleep(0)

    assert first.closed
    assert not second.closed
    assert manager.active_attempt is second
    assert profiles.status_calls.count("FIRST") == first_calls
    assert "SECOND" in profiles.status_calls
    manager.close()


@pytest.mark.asyncio
async def test_close_is_idempotent(tmp_path) -> None:
    manager = _manager(tmp_path, StubProfiles())
    attempt = manager.open("instagram", "https://platform.example/a?state=S")

    manager.close()
    manager.close()

    assert attempt.closed
    assert manager.active_attempt is None


@pytest.mark.asyncio
async def test_success_returns_to_platform_list(tmp_path) -> None:
    profiles = StubProfiles(status="token_available")
    manager = _manager(tmp_path, profiles)
    connected: list[str] = []

    manager.open(
        "instagram",
        "https://platform.example/a?state=S",
        on_success=lambda: connected.append("done"),
    )
    poller = manager.active_poller

    assert await poller.wait() is PollStatus.SUCCESS
    assert connected == ["done"]
    assert manager.active_attempt is None


@pytest.mark.asyncio
async def test_group_scoped_calls_require_tokens(tmp_path) -> None:
    manager = _manager(tmp_path, StubProfiles(), signed_in=False)

    with pytest.raises(AuthenticationRequiredError):
        await manager.open_platform(1, "instagram")
    with pytest.raises(AuthenticationRequiredError):
        await manager.list_connected_accounts()


@pytest.mark.asyncio
async def test_delete_connected_account_is_group_scoped(tmp_path) -> None:
    profiles = StubProfiles()
    manager = _manager(tmp_path, profiles)

    await manager.delete_connected_account(12)

    assert profiles.deleted == [(12, "g1")]
    assert [p.platform_type for p in await manager.list_platforms()] == ["instagram"]


@pytest.mark.asyncio
async def test_global_logout_abandons_active_attempt(tmp_path) -> None:
    profiles = StubProfiles()
    bus = EventBus()
    manager = _manager(tmp_path, profiles, bus=bus)
    attempt = manager.open("instagram", "https://platform.example/authorize?state=g1_3")
    await asyncio.sleep(0)

    bus.publish(LOGOUT, reason="token_refresh_failed")
    calls = len(profiles.status_calls)
    for _ in range(10):
        await asyncio.sleep(0)

    assert manager.active_attempt is None
    assert attempt.closed
    assert len(profiles.status_calls) == calls


def test_dispose_stops_listening_for_logout(tmp_path) -> None:
    bus = EventBus()
    manager = _manager(tmp_path, StubProfiles(), bus=bus)
    assert bus.subscriber_count(LOGOUT) == 1

    manager.dispose()

    assert bus.subscriber_count(LOGOUT) == 0
