"""Service layer exports."""

from .connection_poller import (
    ConnectionAttempt,
    ConnectionPoller,
    PollStatus,
    extract_state_token,
)
from .connections import ConnectionManager
from .credential_store import CredentialStore, DataValidation
from .events import ACCOUNT_CONNECTED, LOGOUT, Event, EventBus
from .oauth_redirect import (
    OAuthRedirectResolver,
    RedirectOutcome,
    RedirectStatus,
    parse_state,
)
from .session import (
    AuthenticationStatus,
    LoginResult,
    OtpStep,
    SessionSnapshot,
    SessionStateMachine,
)
from .token_cipher import CredentialCipher

__all__ = [
    "ACCOUNT_CONNECTED",
    "AuthenticationStatus",
    "ConnectionAttempt",
    "ConnectionManager",
    "ConnectionPoller",
    "CredentialCipher",
    "CredentialStore",
    "DataValidation",
    "Event",
    "EventBus",
    "LOGOUT",
    "LoginResult",
    "OAuthRedirectResolver",
    "OtpStep",
    "PollStatus",
    "RedirectOutcome",
    "RedirectStatus",
    "SessionSnapshot",
    "SessionStateMachine",
    "extract_state_token",
    "parse_state",
]
