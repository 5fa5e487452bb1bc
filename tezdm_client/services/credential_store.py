"""
Persistent credential storage with integrity validation.

Every record is wrapped in a :class:`StoredRecord` envelope carrying a format
version, a write timestamp and an HMAC checksum of the payload. Token records
are encrypted at rest. A record failing any check is deleted on read and
reported as absent.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Type, TypeVar

import jwt
from pydantic import BaseModel

from tezdm_client.core.errors import InvalidTokenError
from tezdm_client.models import StoredRecord, TokenSet, UserProfile

if TYPE_CHECKING:
    from tezdm_client.clients.sqlite_store import SQLiteKeyValueStore
    from tezdm_client.services.token_cipher import CredentialCipher

logger = logging.getLogger(__name__)

STORE_VERSION = "1.0.0"
NAMESPACE = "credentials"
TOKENS_KEY = "tokens"
USER_KEY = "user"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _canonical(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


@dataclass(slots=True)
class DataValidation:
    """Outcome of validating everything held by the store."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)


class CredentialStore:
    """Store, retrieve and validate the session's tokens and user profile."""

    def __init__(
        self,
        kv_store: SQLiteKeyValueStore,
        cipher: CredentialCipher,
        *,
        max_data_age_seconds: int = 86400,
        token_refresh_threshold_seconds: int = 300,
        security_logging: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._kv = kv_store
        self._cipher = cipher
        self._max_age = timedelta(seconds=max_data_age_seconds)
        self._refresh_threshold = timedelta(seconds=token_refresh_threshold_seconds)
        self._write_log_level = logging.INFO if security_logging else logging.DEBUG
        self._clock = clock

    # -- token helpers -------------------------------------------------

    @staticmethod
    def get_token_expiry(access_token: str) -> Optional[datetime]:
        """Return the ``exp`` claim of a JWT, or ``None`` when it cannot be read."""
        try:
            claims = jwt.decode(
                access_token,
                options={"verify_signature": False, "verify_exp": False},
            )
        except jwt.PyJWTError:
            return None
        exp = claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return None
        try:
            return datetime.fromtimestamp(exp, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    def is_token_expired(self, token: str) -> bool:
        """True when the token is expired or expires within the refresh threshold."""
        expires_at = self.get_token_expiry(token)
        if expires_at is None:
            return True
        return self._clock() >= expires_at - self._refresh_threshold

    def _checked_tokens(self, tokens: TokenSet) -> TokenSet:
        expires_at = self.get_token_expiry(tokens.access_token)
        if expires_at is None:
            raise InvalidTokenError()
        return tokens.model_copy(update={"expires_at": expires_at})

    # -- record encoding -----------------------------------------------

    def _encode(self, model: BaseModel, *, encrypt: bool) -> str:
        data = model.model_dump(mode="json")
        record = StoredRecord(
            data=data,
            timestamp=self._clock(),
            version=STORE_VERSION,
            checksum=self._cipher.checksum(_canonical(data)),
            encrypted=encrypt,
        )
        payload = record.model_dump_json()
        if encrypt:
            payload = self._cipher.encrypt(payload)
        return json.dumps({"encrypted": encrypt, "payload": payload})

    def _decode(self, raw: str) -> StoredRecord:
        wrapper = json.loads(raw)
        if not isinstance(wrapper, dict):
            raise ValueError("malformed record wrapper")
        payload = wrapper["payload"]
        if not isinstance(payload, str):
            raise ValueError("malformed record payload")
        if wrapper.get("encrypted"):
            payload = self._cipher.decrypt(payload)
        record = StoredRecord.model_validate_json(payload)

        if record.version != STORE_VERSION:
            raise ValueError(f"version mismatch ({record.version})")
        if self._clock() - record.timestamp > self._max_age:
            raise ValueError("data too old")
        if not self._cipher.verify(_canonical(record.data), record.checksum):
            raise ValueError("checksum mismatch")
        return record

    def _read(self, key: str, model: Type[ModelT]) -> Optional[ModelT]:
        raw = self._kv.get(NAMESPACE, key)
        if raw is None:
            return None
        try:
            record = self._decode(raw)
            return model.model_validate(record.data)
        except (KeyError, TypeError, ValueError) as exc:
            # pydantic.ValidationError and JSON decode errors are ValueErrors.
            logger.warning("Discarding stored %s record: %s", key, exc)
            self._kv.delete(NAMESPACE, key)
            return None

    def _log_write(self, *keys: str) -> None:
        logger.log(
            self._write_log_level,
            "Stored credential records",
            extra={"keys": list(keys)},
        )

    # -- public interface ----------------------------------------------

    def store_tokens(self, tokens: TokenSet) -> TokenSet:
        """Persist tokens; raises :class:`InvalidTokenError` if expiry is unknown."""
        checked = self._checked_tokens(tokens)
        self._kv.put(NAMESPACE, TOKENS_KEY, self._encode(checked, encrypt=True))
        self._log_write(TOKENS_KEY)
        return checked

    def store_user(self, user: UserProfile) -> None:
        self._kv.put(NAMESPACE, USER_KEY, self._encode(user, encrypt=False))
        self._log_write(USER_KEY)

    def store_credentials(self, user: UserProfile, tokens: TokenSet) -> TokenSet:
        """Persist the profile and tokens together in one transaction."""
        checked = self._checked_tokens(tokens)
        self._kv.put_many(
            NAMESPACE,
            {
                TOKENS_KEY: self._encode(checked, encrypt=True),
                USER_KEY: self._encode(user, encrypt=False),
            },
        )
        self._log_write(TOKENS_KEY, USER_KEY)
        return checked

    def get_tokens(self) -> Optional[TokenSet]:
        return self._read(TOKENS_KEY, TokenSet)

    def get_user(self) -> Optional[UserProfile]:
        return self._read(USER_KEY, UserProfile)

    def get_valid_access_token(self) -> Optional[str]:
        tokens = self.get_tokens()
        if tokens is None or self.is_token_expired(tokens.access_token):
            return None
        return tokens.access_token

    def is_authenticated(self) -> bool:
        if self.get_user() is None:
            return False
        return self.get_valid_access_token() is not None

    def validate_all_data(self) -> DataValidation:
        errors: List[str] = []

        tokens = self.get_tokens()
        if tokens is None:
            errors.append("No valid tokens found")
        elif self.is_token_expired(tokens.access_token):
            errors.append("Access token is expired")

        if self.get_user() is None:
            errors.append("No valid user data found")

        return DataValidation(is_valid=not errors, errors=errors)

    def clear_all_data(self) -> None:
        self._kv.clear_namespace(NAMESPACE)
        logger.log(self._write_log_level, "Cleared stored credentials")


__all__ = ["CredentialStore", "DataValidation", "STORE_VERSION"]
