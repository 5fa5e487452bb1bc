try:
    from . import _bootstrap  # noqa: F401
    from ._factories import make_jwt, make_store
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _factories import make_jwt, make_store  # type: ignore

import httpx
import pytest

from tezdm_client.core.errors import AuthenticationRequiredError, RemoteError
from tezdm_client.main import app
from tezdm_client.schemas import Group, OAuthStatus, Platform, TokenPair
from tezdm_client.services.connection_poller import ConnectionAttempt
from tezdm_client.services.events import EventBus
from tezdm_client.services.oauth_redirect import OAuthRedirectResolver
from tezdm_client.services.session import SessionStateMachine


class StubGateway:
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def generate_otp(self, email: str) -> None:
        self.calls.append("generate_otp")

    async def validate_otp(self, email: str, code: str) -> TokenPair:
        self.calls.append("validate_otp")
        return TokenPair(access_token="initial", refresh_token="initial-refresh")

    async def get_groups(self, access_token: str):
        return [Group(id="g1")]

    async def refresh_token_with_group(self, refresh_token: str, group_id) -> TokenPair:
        return TokenPair(access_token=make_jwt(), refresh_token="final-refresh")

    async def get_group_memberships(self, access_token: str, group_id):
        return []

    async def signout(self, refresh_token: str, group_id) -> None:
        self.calls.append("signout")
        raise RemoteError("Network error occurred")


class StubConnectionManager:
    def __init__(self) -> None:
        self.active_attempt: ConnectionAttempt | None = None
        self.platforms_error: Exception | None = None
        self.closed = 0

    async def list_platforms(self):
        if self.platforms_error is not None:
            raise self.platforms_error
        return [Platform(id=1, platform_type="instagram")]

    async def open_platform(self, platform_id: int, platform_name: str):
        self.active_attempt = ConnectionAttempt(
            platform_name=platform_name,
            oauth_url=f"https://platform.example/authorize?state=g1_{platform_id}",
        )
        return self.active_attempt

    def close(self) -> None:
        self.closed += 1
        self.active_attempt = None


class StubProfiles:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def complete_oauth_redirect(self, code: str, state: str):
        self.calls.append((code, state))
        return {}

    async def get_oauth_status(self, state: str) -> OAuthStatus:  # pragma: no cover
        return OAuthStatus(state="pending")


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture()
def overrides(tmp_path):
    from tezdm_client import dependencies

    gateway = StubGateway()
    session = SessionStateMachine(gateway, make_store(tmp_path), EventBus())
    session.start()
    manager = StubConnectionManager()
    profiles = StubProfiles()
    resolver = OAuthRedirectResolver(profiles, lambda: session.is_authenticated)

    app.dependency_overrides.clear()
    app.dependency_overrides.update(
        {
            dependencies.get_session: lambda: session,
            dependencies.get_connection_manager: lambda: manager,
            dependencies.get_redirect_resolver: lambda: resolver,
        }
    )

    yield gateway, session, manager, profiles

    session.close()
    app.dependency_overrides.clear()


@pytest.fixture()
async def client(overrides):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as test_client:
        yield test_client


async def test_healthcheck(client):
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_otp_login_round_trip(overrides, client):
    gateway, session, _, _ = overrides

    response = await client.post("/api/session/otp", json={"email": "a@b.com"})
    assert response.status_code == 200
    assert response.json()["session"]["otp_step"] == "otp"

    response = await client.post(
        "/api/session/otp/verify", json={"email": "a@b.com", "code": "123456"}
    )
    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["redirect_to"] == "/connect-accounts"
    assert body["session"]["otp_step"] == "success"
    assert body["session"]["is_authenticated"] is True
    assert body["session"]["user"]["email"] == "a@b.com"

    response = await client.get("/api/session")
    assert response.json()["authentication_status"] == "authenticated"


async def test_invalid_code_is_reported_in_snapshot(overrides, client):
    gateway, _, _, _ = overrides

    response = await client.post(
        "/api/session/otp/verify", json={"email": "a@b.com", "code": "12"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["session"]["error"] == "Please enter the 6-digit code sent to your email"
    assert gateway.calls == []


async def test_signout_always_clears_session(overrides, client):
    gateway, session, _, _ = overrides
    await session.validate_otp("a@b.com", "123456")

    response = await client.post("/api/session/signout")

    assert response.status_code == 200
    assert response.json()["session"]["is_authenticated"] is False
    assert "signout" in gateway.calls


async def test_update_user_requires_authentication(client):
    response = await client.patch("/api/session/user", json={"name": "Ada"})

    assert response.status_code == 401


async def test_update_user_merges_profile(overrides, client):
    _, session, _, _ = overrides
    await session.validate_otp("a@b.com", "123456")

    response = await client.patch("/api/session/user", json={"name": "Ada"})

    assert response.status_code == 200
    assert response.json()["session"]["user"]["name"] == "Ada"
    assert response.json()["session"]["user"]["email"] == "a@b.com"


async def test_connection_lifecycle(overrides, client):
    _, _, manager, _ = overrides

    response = await client.get("/api/connections/current")
    assert response.status_code == 404

    response = await client.post(
        "/api/connections", json={"platform_id": 3, "platform_name": "instagram"}
    )
    assert response.status_code == 201
    assert response.json()["state_token"] == "g1_3"
    assert response.json()["poll_status"] == "idle"

    response = await client.get("/api/connections/current")
    assert response.json()["platform_name"] == "instagram"

    response = await client.delete("/api/connections/current")
    assert response.status_code == 200
    assert manager.closed == 1


async def test_platform_errors_map_to_http_status(overrides, client):
    _, _, manager, _ = overrides

    manager.platforms_error = AuthenticationRequiredError()
    assert (await client.get("/api/connections/platforms")).status_code == 401

    manager.platforms_error = RemoteError("Profile service down")
    response = await client.get("/api/connections/platforms")
    assert response.status_code == 502
    assert response.json()["detail"] == "Profile service down"

    manager.platforms_error = None
    response = await client.get("/api/connections/platforms")
    assert response.json() == [{"id": 1, "platform_type": "instagram"}]


async def test_oauth_redirect_success_for_anonymous_user(overrides, client):
    _, _, _, profiles = overrides

    response = await client.get(
        "/api/oauth/redirect", params={"code": "abc", "state": "g1_3"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["redirect_to"] == "/login"
    assert body["notice"].startswith("Profile has been added to TezDM!")
    assert profiles.calls == [("abc", "g1_3")]


async def test_oauth_redirect_malformed_state(overrides, client):
    _, _, _, profiles = overrides

    response = await client.get(
        "/api/oauth/redirect", params={"code": "abc", "state": "nounderscore"}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid state parameter format"
    assert profiles.calls == []
