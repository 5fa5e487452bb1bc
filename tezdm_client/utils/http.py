"""HTTP utilities for talking to the envelope-style remote API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from tezdm_client.core.config import ApiSettings
from tezdm_client.core.errors import AuthenticationFailedError, RemoteError
from tezdm_client.schemas import ApiEnvelope

ModelT = TypeVar("ModelT", bound=BaseModel)


def build_client(
    settings: ApiSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    access_token: str | None = None,
) -> httpx.AsyncClient:
    """Create a short-lived client bound to the API base URL."""
    headers = {"Content-Type": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return httpx.AsyncClient(
        base_url=settings.base_url,
        headers=headers,
        timeout=settings.timeout_seconds,
        transport=transport,
    )


async def request_envelope(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    error_message: str = "API request failed",
    authenticated: bool = False,
) -> Any:
    """
    Perform a request and return the ``data`` member of the response envelope.

    Transport failures, undecodable bodies and ``status != 1`` envelopes are
    raised as :class:`RemoteError`. A 401 on an authenticated call raises
    :class:`AuthenticationFailedError`.
    """
    try:
        response = await client.request(
            method, url, params=params, json=json, headers=headers
        )
    except httpx.HTTPError as exc:
        raise RemoteError("Network error occurred") from exc

    if authenticated and response.status_code == 401:
        raise AuthenticationFailedError(status_code=401)

    try:
        envelope = ApiEnvelope.model_validate(response.json())
    except (ValueError, PydanticValidationError) as exc:
        raise RemoteError(
            f"Unexpected response from server (HTTP {response.status_code})",
            status_code=response.status_code,
        ) from exc

    if envelope.status != 1:
        raise RemoteError(
            envelope.message or error_message, status_code=response.status_code
        )
    return envelope.data


def parse_model(
    model: Type[ModelT],
    data: Any,
    *,
    error_message: str = "Unexpected response from server.",
) -> ModelT:
    """Validate an envelope's ``data`` member, reporting failures as remote errors."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise RemoteError(error_message) from exc


def parse_list(model: Type[ModelT], data: Any) -> List[ModelT]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise RemoteError("Unexpected response from server.")
    return [parse_model(model, item) for item in data]


__all__ = ["build_client", "parse_list", "parse_model", "request_envelope"]
