"""
Session state machine for the OTP login flow.

The machine owns the authentication status, the OTP step sequence and the
signed-in user's profile. It orchestrates the auth gateway and the credential
store; expected failures never raise, they set ``error`` on the session and
return a falsy result.

OTP step sequence::

    email -> loading -> otp -> loading -> success
              |                  |
              +-> email          +-> otp      (on failure)

Credentials are persisted only once every remote step has succeeded. A global
``auth:logout`` event resets the session immediately; operations still in
flight when that happens are fenced off by a session epoch and leave no trace
when they resume.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from tezdm_client.core.errors import (
    IntegrityError,
    InvalidTokenError,
    NoGroupsError,
    RemoteError,
    TezDMError,
    ValidationError,
)
from tezdm_client.models import GroupId, TokenSet, UserProfile
from tezdm_client.schemas import TOKEN_AVAILABLE, TokenPair
from tezdm_client.services.events import LOGOUT, Event

if TYPE_CHECKING:
    from tezdm_client.clients.auth_gateway import AuthGatewayClient
    from tezdm_client.clients.profile_api import ProfileClient
    from tezdm_client.services.credential_store import CredentialStore
    from tezdm_client.services.events import EventBus

logger = logging.getLogger(__name__)

AUTOMATIONS_ROUTE = "/automations"
CONNECT_ACCOUNTS_ROUTE = "/connect-accounts"

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_MIN_PASSWORD_LENGTH = 8


class AuthenticationStatus(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


class OtpStep(str, Enum):
    EMAIL = "email"
    OTP = "otp"
    LOADING = "loading"
    SUCCESS = "success"


class SessionSnapshot(BaseModel):
    """Immutable view of the session handed to observers and API callers."""

    model_config = ConfigDict(frozen=True)

    authentication_status: AuthenticationStatus
    is_authenticated: bool
    otp_step: OtpStep
    current_email: Optional[str] = None
    error: Optional[str] = None
    user: Optional[UserProfile] = None
    is_loading: bool = False
    is_auth_loading: bool = False


@dataclass(frozen=True, slots=True)
class LoginResult:
    success: bool
    redirect_to: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success


SessionListener = Callable[[SessionSnapshot], None]


class SessionStateMachine:
    """Coordinate OTP login, legacy login, sign-up, sign-out and profile edits."""

    def __init__(
        self,
        gateway: AuthGatewayClient,
        credential_store: CredentialStore,
        event_bus: EventBus,
        *,
        profile_client: Optional[ProfileClient] = None,
        otp_length: int = 6,
    ) -> None:
        self._gateway = gateway
        self._store = credential_store
        self._events = event_bus
        self._profiles = profile_client
        self._otp_pattern = re.compile(rf"^\d{{{otp_length}}}$")
        self._otp_length = otp_length

        self._authentication_status = AuthenticationStatus.ANONYMOUS
        self._otp_step = OtpStep.EMAIL
        self._current_email: Optional[str] = None
        self._error: Optional[str] = None
        self._user: Optional[UserProfile] = None
        self._is_loading = True
        self._is_auth_loading = False

        self._epoch = 0
        self._listeners: List[SessionListener] = []
        self._unsubscribe_logout: Optional[Callable[[], None]] = None

    # -- observable state ----------------------------------------------

    @property
    def authentication_status(self) -> AuthenticationStatus:
        return self._authentication_status

    @property
    def is_authenticated(self) -> bool:
        return self._authentication_status is AuthenticationStatus.AUTHENTICATED

    @property
    def otp_step(self) -> OtpStep:
        return self._otp_step

    @property
    def current_email(self) -> Optional[str]:
        return self._current_email

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def user(self) -> Optional[UserProfile]:
        return self._user

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def is_auth_loading(self) -> bool:
        return self._is_auth_loading

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            authentication_status=self._authentication_status,
            is_authenticated=self.is_authenticated,
            otp_step=self._otp_step,
            current_email=self._current_email,
            error=self._error,
            user=self._user,
            is_loading=self._is_loading,
            is_auth_loading=self._is_auth_loading,
        )

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call ``listener`` with a fresh snapshot after every state change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _update(self, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(self, f"_{name}", value)
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Session listener failed")

    # -- lifecycle -----------------------------------------------------

    def start(self) -> None:
        """Reconcile the session with whatever the credential store holds."""
        if self._unsubscribe_logout is None:
            self._unsubscribe_logout = self._events.subscribe(
                LOGOUT, self._on_global_logout
            )

        try:
            validation = self._store.validate_all_data()
            if not validation.is_valid:
                raise IntegrityError(validation.errors)
            user = self._store.get_user() if self._store.is_authenticated() else None
        except Exception as exc:
            message = exc.message if isinstance(exc, IntegrityError) else repr(exc)
            logger.warning("Discarding stored session: %s", message)
            self._store.clear_all_data()
            self._update(
                authentication_status=AuthenticationStatus.ANONYMOUS,
                user=None,
                is_loading=False,
            )
            return

        if user is not None:
            self._update(
                authentication_status=AuthenticationStatus.AUTHENTICATED,
                user=user,
                is_loading=False,
            )
            logger.info("Restored stored session")
        else:
            self._update(is_loading=False)

    def close(self) -> None:
        if self._unsubscribe_logout is not None:
            self._unsubscribe_logout()
            self._unsubscribe_logout = None

    def _on_global_logout(self, event: Event) -> None:
        logger.info(
            "Resetting session after global logout",
            extra={"reason": event.payload.get("reason")},
        )
        self._reset()

    def _reset(self) -> None:
        self._epoch += 1
        self._store.clear_all_data()
        self._update(
            authentication_status=AuthenticationStatus.ANONYMOUS,
            otp_step=OtpStep.EMAIL,
            current_email=None,
            error=None,
            user=None,
            is_auth_loading=False,
        )

    def _is_stale(self, epoch: int) -> bool:
        return epoch != self._epoch

    def _begin(self, **changes: Any) -> int:
        self._update(error=None, is_auth_loading=True, **changes)
        return self._epoch

    def _fail(self, epoch: int, exc: TezDMError, **changes: Any) -> None:
        if self._is_stale(epoch):
            return
        logger.warning("Authentication step failed: %s", exc.message)
        self._update(error=exc.message, is_auth_loading=False, **changes)

    # -- input validation ----------------------------------------------

    @staticmethod
    def _validated_email(email: str) -> str:
        email = (email or "").strip()
        if not email:
            raise ValidationError("Please enter your email address")
        if not _EMAIL_PATTERN.match(email):
            raise ValidationError("Please enter a valid email address")
        return email

    def _validated_code(self, code: str) -> str:
        code = (code or "").strip()
        if not self._otp_pattern.match(code):
            raise ValidationError(
                f"Please enter the {self._otp_length}-digit code sent to your email"
            )
        return code

    # -- OTP flow ------------------------------------------------------

    async def generate_otp(self, email: str) -> bool:
        """Request a passcode for ``email``; on failure the step returns to ``email``."""
        try:
            email = self._validated_email(email)
        except ValidationError as exc:
            self._update(error=exc.message)
            return False

        epoch = self._begin(otp_step=OtpStep.LOADING)
        try:
            await self._gateway.generate_otp(email)
        except TezDMError as exc:
            self._fail(epoch, exc, otp_step=OtpStep.EMAIL)
            return False

        if self._is_stale(epoch):
            return False
        self._update(
            current_email=email, otp_step=OtpStep.OTP, is_auth_loading=False
        )
        logger.info("One-time passcode requested")
        return True

    async def resend_otp(self) -> bool:
        """Request a new passcode for the email already entered."""
        email = self._current_email
        if not email:
            self._update(error="Please enter your email address")
            return False

        epoch = self._begin(otp_step=OtpStep.LOADING)
        try:
            await self._gateway.generate_otp(email)
        except TezDMError as exc:
            self._fail(epoch, exc, otp_step=OtpStep.OTP)
            return False

        if self._is_stale(epoch):
            return False
        self._update(otp_step=OtpStep.OTP, is_auth_loading=False)
        return True

    async def validate_otp(self, email: str, code: str) -> LoginResult:
        """
        Exchange a passcode for a persisted, group-scoped session.

        The remote steps run strictly in sequence. Nothing is persisted unless
        all of them succeed; any failure returns the step to ``otp`` so the
        code can be re-entered without requesting a new one.
        """
        try:
            email = self._validated_email(email)
            code = self._validated_code(code)
        except ValidationError as exc:
            self._update(error=exc.message)
            return LoginResult(success=False)

        epoch = self._begin(otp_step=OtpStep.LOADING)
        try:
            initial = await self._gateway.validate_otp(email, code)
            groups = await self._gateway.get_groups(initial.access_token)
            if not groups:
                raise NoGroupsError()
            group_id = groups[0].id
            final = await self._gateway.refresh_token_with_group(
                initial.refresh_token, group_id
            )
            tokens = self._token_set(final, group_id)
            name = await self._display_name(final.access_token, group_id)
            if self._is_stale(epoch):
                return LoginResult(success=False)
            user = UserProfile.from_email(email, name=name)
            self._store.store_credentials(user, tokens)
        except TezDMError as exc:
            self._fail(epoch, exc, otp_step=OtpStep.OTP)
            return LoginResult(success=False)

        self._update(
            authentication_status=AuthenticationStatus.AUTHENTICATED,
            otp_step=OtpStep.SUCCESS,
            current_email=email,
            user=user,
            is_auth_loading=False,
        )
        logger.info("OTP login completed", extra={"group_id": group_id})
        return await self._login_result(epoch, group_id)

    def _token_set(self, pair: TokenPair, group_id: GroupId) -> TokenSet:
        expires_at = self._store.get_token_expiry(pair.access_token)
        if expires_at is None:
            raise InvalidTokenError()
        return TokenSet(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_at=expires_at,
            group_id=group_id,
        )

    async def _display_name(
        self, access_token: str, group_id: GroupId
    ) -> Optional[str]:
        try:
            memberships = await self._gateway.get_group_memberships(
                access_token, group_id
            )
        except TezDMError as exc:
            logger.warning("Could not load group memberships: %s", exc.message)
            return None
        if not memberships:
            return None
        return memberships[0].user_name

    async def _login_result(self, epoch: int, group_id: GroupId) -> LoginResult:
        """Pick the post-login destination from the connected accounts."""
        redirect_to = CONNECT_ACCOUNTS_ROUTE
        if self._profiles is not None:
            try:
                accounts = await self._profiles.get_connected_accounts(group_id)
            except TezDMError as exc:
                logger.warning("Could not check connected accounts: %s", exc.message)
            else:
                if any(
                    account.platform == "instagram"
                    and account.state in ("connected", TOKEN_AVAILABLE)
                    for account in accounts
                ):
                    redirect_to = AUTOMATIONS_ROUTE
        if self._is_stale(epoch):
            return LoginResult(success=False)
        return LoginResult(success=True, redirect_to=redirect_to)

    # -- legacy password flows -----------------------------------------

    def _credentials_from_pair(self, pair: TokenPair) -> Tuple[TokenSet, GroupId]:
        if pair.group is None:
            raise NoGroupsError()
        return self._token_set(pair, pair.group), pair.group

    async def login(self, email: str, password: str) -> LoginResult:
        """Single round-trip password login."""
        try:
            email = self._validated_email(email)
            if not password:
                raise ValidationError("Please enter your password")
        except ValidationError as exc:
            self._update(error=exc.message)
            return LoginResult(success=False)

        epoch = self._begin()
        try:
            pair = await self._gateway.login(email, password)
            tokens, group_id = self._credentials_from_pair(pair)
            if self._is_stale(epoch):
                return LoginResult(success=False)
            user = UserProfile.from_email(email)
            self._store.store_credentials(user, tokens)
        except TezDMError as exc:
            self._fail(epoch, exc)
            return LoginResult(success=False)

        self._update(
            authentication_status=AuthenticationStatus.AUTHENTICATED,
            current_email=email,
            user=user,
            is_auth_loading=False,
        )
        return await self._login_result(epoch, group_id)

    async def signup(self, name: str, email: str, password: str) -> bool:
        """
        Register an account.

        When the server answers with a group-scoped token pair the session is
        authenticated right away; otherwise the caller continues with login.
        """
        try:
            if not (name or "").strip():
                raise ValidationError("Please enter your name")
            email = self._validated_email(email)
            if len(password or "") < _MIN_PASSWORD_LENGTH:
                raise ValidationError(
                    f"Password must be at least {_MIN_PASSWORD_LENGTH} characters"
                )
        except ValidationError as exc:
            self._update(error=exc.message)
            return False

        epoch = self._begin()
        try:
            pair = await self._gateway.signup(email, password, name.strip())
            user = None
            if pair is not None and pair.group is not None:
                tokens, _ = self._credentials_from_pair(pair)
                if self._is_stale(epoch):
                    return False
                user = UserProfile.from_email(email, name=name.strip())
                self._store.store_credentials(user, tokens)
        except TezDMError as exc:
            self._fail(epoch, exc)
            return False

        if self._is_stale(epoch):
            return False
        if user is None:
            self._update(is_auth_loading=False)
        else:
            self._update(
                authentication_status=AuthenticationStatus.AUTHENTICATED,
                current_email=email,
                user=user,
                is_auth_loading=False,
            )
        return True

    async def request_password_reset(self, email: str) -> bool:
        try:
            email = self._validated_email(email)
        except ValidationError as exc:
            self._update(error=exc.message)
            return False

        epoch = self._begin()
        try:
            await self._gateway.forgot_password(email)
        except TezDMError as exc:
            self._fail(epoch, exc)
            return False
        if not self._is_stale(epoch):
            self._update(is_auth_loading=False)
        return True

    async def reset_password(
        self,
        *,
        email: str,
        password: str,
        confirm_password: str,
        otp_token: str,
        hmac_signature: str,
    ) -> bool:
        """Set a new password using the token pair from a reset link."""
        try:
            if not otp_token or not hmac_signature or not email:
                raise ValidationError(
                    "Invalid reset link. Please request a new password reset."
                )
            email = self._validated_email(email)
            if len(password or "") < _MIN_PASSWORD_LENGTH:
                raise ValidationError(
                    f"Password must be at least {_MIN_PASSWORD_LENGTH} characters"
                )
            if password != confirm_password:
                raise ValidationError("Passwords do not match")
        except ValidationError as exc:
            self._update(error=exc.message)
            return False

        epoch = self._begin()
        try:
            await self._gateway.reset_password(
                password=password,
                confirm_password=confirm_password,
                otp_token=otp_token,
                hmac_signature=hmac_signature,
                email=email,
            )
        except TezDMError as exc:
            self._fail(epoch, exc)
            return False
        if not self._is_stale(epoch):
            self._update(is_auth_loading=False)
        return True

    # -- leaving the session -------------------------------------------

    def logout(self) -> None:
        """Drop the local session without contacting the server."""
        self._reset()

    async def signout(self) -> None:
        """
        End the session remotely when possible, then always clear it locally.

        Remote failures are logged and swallowed so a stuck backend can never
        keep the user signed in.
        """
        try:
            tokens = self._store.get_tokens()
            if tokens is not None:
                await self._gateway.signout(tokens.refresh_token, tokens.group_id)
        except RemoteError as exc:
            logger.warning("Remote sign-out failed: %s", exc.message)
        finally:
            self._reset()

    # -- profile -------------------------------------------------------

    def update_user(self, updates: Dict[str, Any]) -> Optional[UserProfile]:
        """Merge ``updates`` into the profile and persist it; no-op when anonymous."""
        if self._user is None or not self.is_authenticated:
            return None
        try:
            merged = self._user.merged(updates)
        except PydanticValidationError:
            self._update(error="Invalid profile update")
            return None
        self._store.store_user(merged)
        self._update(user=merged)
        return merged

    def clear_error(self) -> None:
        self._update(error=None)


__all__ = [
    "AUTOMATIONS_ROUTE",
    "AuthenticationStatus",
    "CONNECT_ACCOUNTS_ROUTE",
    "LoginResult",
    "OtpStep",
    "SessionListener",
    "SessionSnapshot",
    "SessionStateMachine",
]
