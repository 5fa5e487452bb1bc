"""
Application configuration models and helpers.

Centralizes settings management so the session state machine, the connection
poller, the companion API and the CLI share one configuration surface.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs so nested settings see them too."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        os.environ[key] = value.strip().strip('"').strip("'")


_load_env_file()


class ApiSettings(BaseSettings):
    """Remote API location and request behaviour."""

    base_url: str = Field(
        "https://api.stage.wokengineers.com/v1",
        validation_alias="TEZDM_API_BASE_URL",
    )
    product_code: str = Field("tezdm", validation_alias="TEZDM_PRODUCT_CODE")
    timeout_seconds: float = Field(10.0, validation_alias="TEZDM_API_TIMEOUT")

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        """Endpoint paths are appended with a leading slash."""
        return value.rstrip("/")


class SecuritySettings(BaseSettings):
    """Credential storage configuration."""

    token_encryption_secret: str = Field(
        ...,
        validation_alias="TEZDM_ENCRYPTION_SECRET",
        description="Secret used to derive the keys protecting stored credentials.",
    )
    storage_path: str = Field(
        str(Path("~/.tezdm/credentials.sqlite3")),
        validation_alias="TEZDM_STORAGE_PATH",
    )
    max_data_age_seconds: int = Field(86400, validation_alias="TEZDM_MAX_DATA_AGE")
    token_refresh_threshold_seconds: int = Field(
        300,
        validation_alias="TEZDM_TOKEN_REFRESH_THRESHOLD",
        description="Access tokens this close to expiry are treated as expired.",
    )
    security_logging: bool = Field(False, validation_alias="TEZDM_SECURITY_LOGGING")


class PollingSettings(BaseSettings):
    """Timers used by the OAuth connection poller and redirect resolver."""

    poll_interval_seconds: float = Field(
        1.0, gt=0, validation_alias="TEZDM_POLL_INTERVAL"
    )
    timeout_seconds: int = Field(300, validation_alias="TEZDM_POLL_TIMEOUT")
    success_grace_seconds: float = Field(2.0, validation_alias="TEZDM_SUCCESS_GRACE")
    redirect_delay_seconds: float = Field(
        2.0, validation_alias="TEZDM_REDIRECT_DELAY"
    )


class AppSettings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(extra="ignore")

    environment: str = Field("development", validation_alias="TEZDM_ENV")
    log_level: str = Field("INFO", validation_alias="TEZDM_LOG_LEVEL")
    otp_length: int = Field(6, validation_alias="TEZDM_OTP_LENGTH")
    api: ApiSettings = Field(default_factory=ApiSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "ApiSettings",
    "AppSettings",
    "PollingSettings",
    "SecuritySettings",
    "get_settings",
]
