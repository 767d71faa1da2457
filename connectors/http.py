"""
Provider HTTP boundary.

Every outbound call to a provider goes through :func:`call_provider`, which
applies the configured timeout and turns transport/status failures into the
adapter error kinds:

* ``ProviderUnavailable``   — timeouts, connection errors, 5xx, 429, or a
  success status with an unreadable body or no token.
* ``ProviderRejected``      — any other non-2xx answer.
* ``ProviderMisconfigured`` — the provider refused our own client
  credentials (``invalid_client``), which no user action can fix.

No retries happen here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from config.settings import config
from connectors.errors import ProviderMisconfigured, ProviderRejected, ProviderUnavailable

logger = logging.getLogger(__name__)


# OAuth error codes that blame the application's client credentials.
_CLIENT_ERROR_CODES = frozenset({"invalid_client", "unauthorized_client"})


def _is_transient_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def _error_code(resp: httpx.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        error = error.get("code")
    return error if isinstance(error, str) else None


async def call_provider(
    provider: str,
    method: str,
    url: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    expect_json: bool = True,
    **kwargs: Any,
) -> Dict[str, Any]:
    """
    Perform one provider request and return the decoded JSON body.

    ``kwargs`` are passed straight to ``httpx.AsyncClient.request`` (``data``,
    ``params``, ``headers``, ``auth``, ``json``).  When ``expect_json`` is
    False an empty dict is returned for any 2xx response.
    """
    try:
        async with httpx.AsyncClient(
            timeout=config.provider_timeout_seconds,
            transport=transport,
        ) as client:
            resp = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as exc:
        logger.warning("%s %s timed out: %s", provider, url, exc)
        raise ProviderUnavailable(f"{provider} request timed out", provider=provider) from exc
    except httpx.HTTPError as exc:
        logger.warning("%s %s transport error: %s", provider, url, exc)
        raise ProviderUnavailable(f"{provider} unreachable: {exc}", provider=provider) from exc

    if resp.status_code >= 400:
        detail = resp.text[:200]
        logger.error("%s %s failed: %s — %s", provider, url, resp.status_code, detail)
        if _is_transient_status(resp.status_code):
            error_cls = ProviderUnavailable
        elif _error_code(resp) in _CLIENT_ERROR_CODES:
            error_cls = ProviderMisconfigured
        else:
            error_cls = ProviderRejected
        raise error_cls(
            f"{provider} returned HTTP {resp.status_code}: {detail}",
            provider=provider,
            status_code=resp.status_code,
        )

    if not expect_json:
        return {}

    try:
        body = resp.json()
    except ValueError as exc:
        raise ProviderUnavailable(
            f"{provider} returned an unreadable body",
            provider=provider,
            status_code=resp.status_code,
        ) from exc
    if not isinstance(body, dict):
        raise ProviderUnavailable(
            f"{provider} returned an unexpected body",
            provider=provider,
            status_code=resp.status_code,
        )
    return body


def raise_for_error_body(provider: str, body: Dict[str, Any]) -> None:
    """
    Some providers answer HTTP 200 with an error object.  Accepts both the
    flat OAuth form (``{"error": "invalid_grant", "error_description": …}``)
    and the nested form (``{"error": {"code": …, "message": …}}``).
    """
    error = body.get("error")
    if not error:
        return
    if isinstance(error, dict):
        code = error.get("code")
        if not code or code == "ok":
            return
        message = error.get("message") or code
    else:
        code = error
        message = body.get("error_description") or error
    if isinstance(code, str) and code in _CLIENT_ERROR_CODES:
        raise ProviderMisconfigured(
            f"{provider} refused the client credentials: {message}", provider=provider
        )
    raise ProviderRejected(f"{provider} OAuth error: {message}", provider=provider)


def require_field(provider: str, body: Dict[str, Any], field: str) -> str:
    """
    Return ``body[field]`` from a successful provider answer.

    A 2xx body without it is treated like an unreadable one.
    """
    value = body.get(field)
    if not value or not isinstance(value, str):
        logger.error("%s answered without '%s': keys=%s", provider, field, sorted(body))
        raise ProviderUnavailable(f"{provider} response is missing '{field}'", provider=provider)
    return value
