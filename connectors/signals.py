"""
Reauth signaler — turns any connector error into a UI-facing signal.

  RETRYABLE      try again later, nothing is wrong with the connection
  NEEDS_REAUTH   show "reconnect <provider>" and restart the OAuth flow
  FATAL          configuration or internal failure, report as-is
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from connectors.errors import (
    CapabilityError,
    ConnectorError,
    Disconnected,
    ExchangeUnavailable,
    NotConnected,
    ProtocolError,
    ProviderRejected,
    TransientError,
)
from connectors.schemas import ProviderCapabilities


class ReauthSignal(str, Enum):
    RETRYABLE = "retryable"
    NEEDS_REAUTH = "needs_reauth"
    FATAL = "fatal"


# A failed exchange has spent its authorization code; only a new flow helps.
_REAUTH_ERRORS = (
    ProtocolError,
    CapabilityError,
    NotConnected,
    Disconnected,
    ProviderRejected,
    ExchangeUnavailable,
)


def classify(
    error: BaseException,
    capabilities: Optional[ProviderCapabilities] = None,
    http_status: Optional[int] = None,
) -> ReauthSignal:
    """
    Classify ``error`` into a ``ReauthSignal``.

    ``capabilities`` is accepted for callers that hold them; the decision
    itself only depends on the error class, since the no-refresh case has
    already been turned into ``NeedsReauth`` / ``RefreshUnsupported`` by
    the time an error gets here.  ``http_status`` only matters for errors
    outside the connector taxonomy.
    """
    if isinstance(error, _REAUTH_ERRORS):
        return ReauthSignal.NEEDS_REAUTH
    if isinstance(error, TransientError):
        return ReauthSignal.RETRYABLE
    if isinstance(error, ConnectorError):
        return ReauthSignal.FATAL

    status = http_status if http_status is not None else getattr(error, "status_code", None)
    if isinstance(status, int):
        if status >= 500 or status == 429:
            return ReauthSignal.RETRYABLE
        if status in (401, 403):
            return ReauthSignal.NEEDS_REAUTH
    return ReauthSignal.FATAL


def describe(
    error: BaseException,
    capabilities: Optional[ProviderCapabilities] = None,
    http_status: Optional[int] = None,
) -> Dict[str, Any]:
    """JSON body for an error response: ``{"error", "signal", "message"}``."""
    signal = classify(error, capabilities, http_status)
    if isinstance(error, ConnectorError):
        body: Dict[str, Any] = {
            "error": error.code,
            "signal": signal.value,
            "message": error.message,
        }
        if error.provider:
            body["provider"] = error.provider
        return body
    return {
        "error": "internal_error",
        "signal": signal.value,
        "message": str(error) or type(error).__name__,
    }
