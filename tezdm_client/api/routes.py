"""
FastAPI routes for the TezDM companion service.

Session operations always answer 200 with the resulting session snapshot;
expected failures are reported in the snapshot's ``error``. Connection
endpoints map remote failures to 502 and missing authentication to 401.
"""

from __future__ import annotations

import dataclasses
import logging
from http import HTTPStatus
from typing import Annotated, Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from tezdm_client.core.errors import (
    AuthenticationFailedError,
    AuthenticationRequiredError,
    RemoteError,
)
from tezdm_client.dependencies import (
    get_connection_manager,
    get_redirect_resolver,
    get_session,
)
from tezdm_client.schemas import (
    ConnectedAccount,
    ConnectionRequest,
    LoginRequest,
    OtpRequest,
    OtpVerifyRequest,
    PasswordResetRequest,
    Platform,
    SignupRequest,
    UserUpdateRequest,
)
from tezdm_client.services import (
    ConnectionAttempt,
    RedirectStatus,
    SessionSnapshot,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class SessionActionResponse(BaseModel):
    success: bool
    redirect_to: Optional[str] = None
    session: SessionSnapshot


def _session_response(
    session: Any, success: bool, redirect_to: Optional[str] = None
) -> SessionActionResponse:
    return SessionActionResponse(
        success=success, redirect_to=redirect_to, session=session.snapshot()
    )


def _attempt_payload(attempt: ConnectionAttempt) -> dict:
    return dataclasses.asdict(attempt)


def _remote_failure(exc: RemoteError) -> HTTPException:
    if isinstance(exc, (AuthenticationRequiredError, AuthenticationFailedError)):
        return HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail=exc.message)
    logger.warning("Profile service call failed: %s", exc.message)
    return HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=exc.message)


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


# -- session ---------------------------------------------------------------


@router.get("/session", response_model=SessionSnapshot)
async def read_session(
    session: Annotated[Any, Depends(get_session)],
) -> SessionSnapshot:
    return session.snapshot()


@router.post("/session/otp", response_model=SessionActionResponse)
async def request_otp(
    payload: OtpRequest,
    session: Annotated[Any, Depends(get_session)],
) -> SessionActionResponse:
    """Send a one-time passcode to the given address."""
    success = await session.generate_otp(payload.email)
    return _session_response(session, success)


@router.post("/session/otp/resend", response_model=SessionActionResponse)
async def resend_otp(
    session: Annotated[Any, Depends(get_session)],
) -> SessionActionResponse:
    success = await session.resend_otp()
    return _session_response(session, success)


@router.post("/session/otp/verify", response_model=SessionActionResponse)
async def verify_otp(
    payload: OtpVerifyRequest,
    session: Annotated[Any, Depends(get_session)],
) -> SessionActionResponse:
    """Complete the OTP login and report where the user should go next."""
    result = await session.validate_otp(payload.email, payload.code)
    return _session_response(session, result.success, result.redirect_to)


@router.post("/session/login", response_model=SessionActionResponse)
async def login(
    payload: LoginRequest,
    session: Annotated[Any, Depends(get_session)],
) -> SessionActionResponse:
    result = await session.login(payload.email, payload.password)
    return _session_response(session, result.success, result.redirect_to)


@router.post("/session/signup", response_model=SessionActionResponse)
async def signup(
    payload: SignupRequest,
    session: Annotated[Any, Depends(get_session)],
) -> SessionActionResponse:
    success = await session.signup(payload.name, payload.email, payload.password)
    return _session_response(session, success)


@router.post("/session/password/forgot", response_model=SessionActionResponse)
async def forgot_password(
    payload: OtpRequest,
    session: Annotated[Any, Depends(get_session)],
) -> SessionActionResponse:
    success = await session.request_password_reset(payload.email)
    return _session_response(session, success)


@router.post("/session/password/reset", response_model=SessionActionResponse)
async def reset_password(
    payload: PasswordResetRequest,
    session: Annotated[Any, Depends(get_session)],
) -> SessionActionResponse:
    success = await session.reset_password(
        email=payload.email,
        password=payload.password,
        confirm_password=payload.confirm_password,
        otp_token=payload.otp_token,
        hmac_signature=payload.hmac_signature,
    )
    return _session_response(session, success)


@router.post("/session/signout", response_model=SessionActionResponse)
async def signout(
    session: Annotated[Any, Depends(get_session)],
) -> SessionActionResponse:
    """End the session; local state is always cleared."""
    await session.signout()
    return _session_response(session, True)


@router.patch("/session/user", response_model=SessionActionResponse)
async def update_user(
    payload: UserUpdateRequest,
    session: Annotated[Any, Depends(get_session)],
) -> SessionActionResponse:
    if not session.is_authenticated:
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED, detail="Authentication required"
        )
    updated = session.update_user(payload.model_dump(exclude_none=True))
    return _session_response(session, updated is not None)


# -- connections -----------------------------------------------------------


@router.get("/connections/platforms", response_model=List[Platform])
async def list_platforms(
    manager: Annotated[Any, Depends(get_connection_manager)],
) -> List[Platform]:
    try:
        return await manager.list_platforms()
    except RemoteError as exc:
        raise _remote_failure(exc) from exc


@router.get("/connections/accounts", response_model=List[ConnectedAccount])
async def list_connected_accounts(
    manager: Annotated[Any, Depends(get_connection_manager)],
    page: int = Query(default=1, ge=1),
) -> List[ConnectedAccount]:
    try:
        return await manager.list_connected_accounts(page)
    except RemoteError as exc:
        raise _remote_failure(exc) from exc


@router.delete("/connections/accounts/{account_id}", status_code=HTTPStatus.OK)
async def delete_connected_account(
    account_id: int,
    manager: Annotated[Any, Depends(get_connection_manager)],
) -> dict:
    try:
        await manager.delete_connected_account(account_id)
    except RemoteError as exc:
        raise _remote_failure(exc) from exc
    return {"status": "deleted", "account_id": account_id}


@router.post("/connections", status_code=HTTPStatus.CREATED)
async def open_connection(
    payload: ConnectionRequest,
    manager: Annotated[Any, Depends(get_connection_manager)],
) -> dict:
    """Start polling for a platform's OAuth completion, replacing any active attempt."""
    try:
        attempt = await manager.open_platform(payload.platform_id, payload.platform_name)
    except RemoteError as exc:
        raise _remote_failure(exc) from exc
    return _attempt_payload(attempt)


@router.get("/connections/current", status_code=HTTPStatus.OK)
async def current_connection(
    manager: Annotated[Any, Depends(get_connection_manager)],
) -> dict:
    attempt = manager.active_attempt
    if attempt is None:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND, detail="No active connection attempt."
        )
    return _attempt_payload(attempt)


@router.delete("/connections/current", status_code=HTTPStatus.OK)
async def close_connection(
    manager: Annotated[Any, Depends(get_connection_manager)],
) -> dict:
    manager.close()
    return {"status": "closed"}


# -- OAuth redirect --------------------------------------------------------


@router.get("/oauth/redirect", status_code=HTTPStatus.OK)
async def oauth_redirect(
    resolver: Annotated[Any, Depends(get_redirect_resolver)],
    code: str | None = Query(default=None, description="Authorization code."),
    state: str | None = Query(
        default=None, description="Opaque '<group>_<platform>' state token."
    ),
) -> dict:
    """Complete the provider's redirect and tell the browser where to go next."""
    outcome = await resolver.resolve(code, state)
    if outcome.status is RedirectStatus.ERROR:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=outcome.message)
    return {
        "status": outcome.status.value,
        "message": outcome.message,
        "redirect_to": outcome.redirect_to,
        "notice": outcome.notice,
    }


__all__ = ["router"]
