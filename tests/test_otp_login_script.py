"""Tests for the command-line OTP login script."""

try:
    from . import _bootstrap  # noqa: F401
    from ._factories import make_jwt, make_store
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _factories import make_jwt, make_store  # type: ignore

from datetime import datetime, timezone

import pytest

from scripts import otp_login
from tezdm_client.models import TokenSet, UserProfile
from tezdm_client.services import LoginResult, OtpStep


class StubSession:
    def __init__(self, *, results=(), generate_ok: bool = True, resend_ok: bool = True) -> None:
        self.results = list(results)
        self.generate_ok = generate_ok
        self.resend_ok = resend_ok
        self.error: str | None = None
        self.otp_step = OtpStep.EMAIL
        self.user: UserProfile | None = None
        self.codes: list[str] = []
        self.resends = 0
        self.signed_out = False

    async def generate_otp(self, email: str) -> bool:
        if not self.generate_ok:
            self.error = "Failed to send OTP"
            return False
        self.otp_step = OtpStep.OTP
        return True

    async def resend_otp(self) -> bool:
        self.resends += 1
        if not self.resend_ok:
            self.error = "Failed to send OTP"
        return self.resend_ok

    async def validate_otp(self, email: str, code: str) -> LoginResult:
        self.codes.append(code)
        result, step = self.results.pop(0)
        self.otp_step = step
        if result.success:
            self.user = UserProfile.from_email(email, name="Ada")
        else:
            self.error = "Invalid OTP"
        return result

    async def signout(self) -> None:
        self.signed_out = True


def _prompt(*answers: str):
    remaining = list(answers)
    return lambda _message: remaining.pop(0)


@pytest.mark.asyncio
async def test_login_succeeds_after_a_wrong_code(capsys) -> None:
    session = StubSession(
        results=[
            (LoginResult(False), OtpStep.OTP),
            (LoginResult(True, "/connect-accounts"), OtpStep.SUCCESS),
        ]
    )

    exit_code = await otp_login.run_login(session, "a@b.com", _prompt("111111", "123456"))

    assert exit_code == 0
    assert session.codes == ["111111", "123456"]
    assert "Signed in as Ada. Next: /connect-accounts" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_login_gives_up_after_max_attempts() -> None:
    session = StubSession(results=[(LoginResult(False), OtpStep.OTP)] * 3)

    exit_code = await otp_login.run_login(
        session, "a@b.com", _prompt("111111", "222222", "333333")
    )

    assert exit_code == 1
    assert len(session.codes) == otp_login.MAX_CODE_ATTEMPTS


@pytest.mark.asyncio
async def test_empty_input_requests_a_new_code() -> None:
    session = StubSession(results=[(LoginResult(True, "/automations"), OtpStep.SUCCESS)])

    exit_code = await otp_login.run_login(session, "a@b.com", _prompt("", "123456"))

    assert exit_code == 0
    assert session.resends == 1
    assert session.codes == ["123456"]


@pytest.mark.asyncio
async def test_login_stops_when_session_leaves_code_entry() -> None:
    session = StubSession(
        results=[(LoginResult(False), OtpStep.EMAIL), (LoginResult(True), OtpStep.SUCCESS)]
    )

    exit_code = await otp_login.run_login(session, "a@b.com", _prompt("111111", "123456"))

    assert exit_code == 1
    assert session.codes == ["111111"]


@pytest.mark.asyncio
async def test_login_fails_when_code_cannot_be_sent(capsys) -> None:
    session = StubSession(generate_ok=False)

    exit_code = await otp_login.run_login(session, "a@b.com", _prompt())

    assert exit_code == 1
    assert session.codes == []
    assert "Could not send a code: Failed to send OTP" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_signout_reports_success() -> None:
    session = StubSession()

    assert await otp_login.run_signout(session) == 0
    assert session.signed_out


def test_status_reports_missing_session(tmp_path, monkeypatch, capsys) -> None:
    store = make_store(tmp_path)
    monkeypatch.setattr(otp_login, "get_credential_store", lambda: store)

    assert otp_login.main(["status"]) == 1
    output = capsys.readouterr().out
    assert "Stored session is not usable:" in output
    assert "No valid tokens found" in output


def test_status_accepts_valid_session(tmp_path, monkeypatch, capsys) -> None:
    store = make_store(tmp_path)
    store.store_credentials(
        UserProfile.from_email("a@b.com"),
        TokenSet(
            access_token=make_jwt(),
            refresh_token="r",
            expires_at=datetime.now(timezone.utc),
            group_id="g1",
        ),
    )
    monkeypatch.setattr(otp_login, "get_credential_store", lambda: store)

    assert otp_login.run_status() == 0
    assert "Stored session is valid." in capsys.readouterr().out
