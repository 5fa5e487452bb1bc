"""
Error taxonomy shared by the clients and the state machines.

Every error carries a human-readable ``message`` suitable for surfacing on a
session, a connection attempt or a redirect outcome.
"""

from __future__ import annotations

from typing import Optional, Sequence


class TezDMError(Exception):
    """Base class for expected client-side failures."""

    default_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(TezDMError):
    """Raised when input is malformed before any network call is made."""

    default_message = "Invalid input."


class RemoteError(TezDMError):
    """Raised when the remote API fails or reports an application-level error."""

    default_message = "API request failed"

    def __init__(
        self, message: Optional[str] = None, *, status_code: Optional[int] = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationFailedError(RemoteError):
    """Raised when an authenticated call is rejected with HTTP 401."""

    default_message = "Authentication failed"


class AuthenticationRequiredError(RemoteError):
    """Raised when no usable access token is available for a call."""

    default_message = "Authentication required"


class ProtocolError(TezDMError):
    """The remote call succeeded but its result breaks the login protocol."""


class NoGroupsError(ProtocolError):
    default_message = "No groups found for this user"


class InvalidTokenError(ProtocolError):
    default_message = "Invalid token response"


class MissingParameterError(ProtocolError):
    default_message = "Missing required OAuth parameters"


class MalformedStateError(ProtocolError):
    default_message = "Invalid state parameter format"


class IntegrityError(TezDMError):
    """Raised when stored credential data fails validation."""

    default_message = "Stored credential data failed integrity validation"

    def __init__(self, errors: Sequence[str] = ()) -> None:
        self.errors = list(errors)
        detail = "; ".join(self.errors)
        super().__init__(
            f"{self.default_message}: {detail}" if detail else self.default_message
        )


__all__ = [
    "AuthenticationFailedError",
    "AuthenticationRequiredError",
    "IntegrityError",
    "InvalidTokenError",
    "MalformedStateError",
    "MissingParameterError",
    "NoGroupsError",
    "ProtocolError",
    "RemoteError",
    "TezDMError",
    "ValidationError",
]
