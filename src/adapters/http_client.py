"""httpx wrapper.

Why a wrapper:
- Standardizes base URL, timeouts, bearer auth and the `environment` switch
  for every rail client.
- Eases testing: tests pass an `httpx.MockTransport` instead of a network.
"""

from __future__ import annotations

from typing import Any

import httpx

from core.config import AppSettings
from core.errors import ConfigError, TransportError


def build_async_client(
    settings: AppSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    extra_headers: dict[str, str] | None = None,
) -> httpx.AsyncClient:
    """Create an `httpx.AsyncClient` bound to the backend base URL.

    Why a builder:
    - Centralizes timeouts/headers so every rail behaves the same.
    - The token is attached here and nowhere else.
    """

    settings = settings or AppSettings()
    if not settings.api_base_url.strip():
        raise ConfigError("BULKPAYOUT_API_BASE_URL is not set")

    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "application/json",
    }
    if settings.api_token:
        headers["Authorization"] = f"Bearer {settings.api_token}"
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        base_url=settings.api_base_url,
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=True,
        headers=headers,
        transport=transport,
    )


def stream_timeout(settings: AppSettings) -> httpx.Timeout:
    """Timeout for long-lived event streams: connect bounded, reads optional."""

    return httpx.Timeout(
        settings.http_timeout_seconds,
        read=settings.stream_read_timeout_seconds,
    )


def with_environment(settings: AppSettings, body: dict[str, Any] | None = None) -> dict[str, Any]:
    """Body for POST/DELETE calls; the backend reads `environment` from it."""

    payload = dict(body or {})
    payload.setdefault("environment", settings.environment)
    return payload


def error_message(response: httpx.Response) -> str:
    """`error` or `message` from a JSON error body, else a status line."""

    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, dict) and isinstance(value.get("message"), str):
                return value["message"]
    return f"Request failed: {response.status_code}"


def raise_for_api_error(response: httpx.Response) -> None:
    """Turn a non-2xx response into `TransportError` (status kept)."""

    if response.is_success:
        return
    raise TransportError(error_message(response), status_code=response.status_code)


def unwrap_data(response: httpx.Response) -> Any:
    """Backend envelope is `{success, message, data}`; return `data`."""

    if response.status_code == 204 or not response.content:
        return {}
    try:
        body = response.json()
    except ValueError as exc:
        raise TransportError("Response is not valid JSON", status_code=response.status_code) from exc
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body
