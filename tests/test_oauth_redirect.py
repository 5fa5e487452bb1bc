try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
import logging

import pytest

from tezdm_client.core.errors import (
    MalformedStateError,
    MissingParameterError,
    RemoteError,
)
from tezdm_client.services.oauth_redirect import (
    LOGIN_NOTICE,
    OAuthRedirectResolver,
    RedirectStatus,
    parse_state,
)


class RecordingProfiles:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def complete_oauth_redirect(self, code: str, state: str):
        self.calls.append((code, state))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return {"id": 99}


async def _no_wait(_: float) -> None:
    await asyncio.sleep(0)


def _resolver(profiles, *, authenticated: bool = True, **kwargs) -> OAuthRedirectResolver:
    return OAuthRedirectResolver(profiles, lambda: authenticated, **kwargs)


@pytest.mark.parametrize(
    "state", ["nounderscore", "_7", "g1_", "_", ""]
)
def test_parse_state_rejects_malformed_values(state) -> None:
    with pytest.raises(MalformedStateError):
        parse_state(state)


def test_parse_state_uses_first_two_segments() -> None:
    assert parse_state("12_3") == ("12", "3")
    assert parse_state("12_3_extra") == ("12", "3")


@pytest.mark.asyncio
@pytest.mark.parametrize("state", ["nounderscore", "_7", "g1_"])
async def test_malformed_state_makes_no_network_call(state) -> None:
    profiles = RecordingProfiles()

    outcome = await _resolver(profiles).resolve("code-1", state)

    assert outcome.status is RedirectStatus.ERROR
    assert isinstance(outcome.exception, MalformedStateError)
    assert outcome.error == "Invalid state parameter format"
    assert profiles.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("code,state", [(None, "1_2"), ("code", None), ("", "")])
async def test_missing_parameters(code, state) -> None:
    profiles = RecordingProfiles()

    outcome = await _resolver(profiles).resolve(code, state)

    assert isinstance(outcome.exception, MissingParameterError)
    assert outcome.message == "Missing required OAuth parameters"
    assert profiles.calls == []


@pytest.mark.asyncio
async def test_authenticated_success_redirects_to_automations() -> None:
    outcome = await _resolver(RecordingProfiles()).resolve("code-1", "12_3")

    assert outcome.status is RedirectStatus.SUCCESS
    assert outcome.message == "Account connected successfully!"
    assert outcome.redirect_to == "/automations"
    assert outcome.notice is None


@pytest.mark.asyncio
async def test_anonymous_success_redirects_to_login_with_notice() -> None:
    outcome = await _resolver(RecordingProfiles(), authenticated=False).resolve(
        "code-1", "12_3"
    )

    assert outcome.redirect_to == "/login"
    assert outcome.notice == LOGIN_NOTICE


@pytest.mark.asyncio
async def test_remote_failure_is_reported() -> None:
    profiles = RecordingProfiles(error=RemoteError("OAuth completion failed"))

    outcome = await _resolver(profiles).resolve("code-1", "12_3")

    assert outcome.status is RedirectStatus.ERROR
    assert outcome.error == "OAuth completion failed"
    assert outcome.redirect_to is None


@pytest.mark.asyncio
async def test_repeated_resolution_exchanges_code_once() -> None:
    profiles = RecordingProfiles(error=RemoteError("code already used"))
    resolver = _resolver(profiles)

    first, second = await asyncio.gather(
        resolver.resolve("code-1", "12_3"), resolver.resolve("code-1", "12_3")
    )
    third = await resolver.resolve("code-1", "12_3")

    assert profiles.calls == [("code-1", "12_3")]
    assert first is second is third


@pytest.mark.asyncio
async def test_navigation_is_scheduled_after_delay() -> None:
    navigations: list[tuple[str, str | None]] = []
    resolver = _resolver(
        RecordingProfiles(),
        authenticated=False,
        navigate=lambda route, notice: navigations.append((route, notice)),
        sleep=_no_wait,
    )

    await resolver.resolve("code-1", "12_3")
    assert resolver.navigation_pending
    for _ in range(5):
        await asyncio.sleep(0)

    assert navigations == [("/login", LOGIN_NOTICE)]
    assert not resolver.navigation_pending


@pytest.mark.asyncio
async def test_pending_navigation_can_be_cancelled() -> None:
    navigations: list[str] = []
    gate = asyncio.Event()

    async def blocked(_: float) -> None:
        await gate.wait()

    resolver = _resolver(
        RecordingProfiles(),
        navigate=lambda route, notice: navigations.append(route),
        sleep=blocked,
    )

    await resolver.resolve("code-1", "12_3")
    resolver.cancel_pending_navigation()
    gate.set()
    for _ in range(5):
        await asyncio.sleep(0)

    assert navigations == []
    assert not resolver.navigation_pending


@pytest.mark.asyncio
async def test_navigation_failure_is_logged(caplog) -> None:
    def broken_navigate(route: str, notice: str | None) -> None:
        raise RuntimeError("router unavailable")

    resolver = _resolver(RecordingProfiles(), navigate=broken_navigate, sleep=_no_wait)

    with caplog.at_level(logging.ERROR, logger="tezdm_client.services.oauth_redirect"):
        outcome = await resolver.resolve("code-1", "12_3")
        for _ in range(5):
            await asyncio.sleep(0)

    assert outcome.status is RedirectStatus.SUCCESS
    assert not resolver.navigation_pending
    failures = [r for r in caplog.records if r.message == "Post-redirect navigation failed"]
    assert len(failures) == 1
    assert isinstance(failures[0].exc_info[1], RuntimeError)
