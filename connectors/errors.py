"""
Error taxonomy for the connection manager.

Adapters translate raw provider responses into ``ProviderRejected`` /
``ProviderUnavailable`` at the HTTP boundary.  The flow orchestrator and the
token manager only ever branch on the classes defined here; they never look at
provider error bodies.

Families
--------
CallerError       reported immediately, never retried
ProtocolError     terminal for one authorization attempt, restart the flow
CapabilityError   expected steady state for some providers, render "reconnect"
TransientError    safe to retry with backoff, never mutates stored credentials
FatalError        configuration / internal failure, logged and surfaced as-is
"""

from __future__ import annotations

from typing import Optional


class ConnectorError(Exception):
    """Base class for every error the connection manager raises."""

    code: str = "connector_error"
    http_status: int = 500

    def __init__(self, message: str = "", *, provider: Optional[str] = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.provider = provider


# ── Caller errors ──────────────────────────────────────────────────────────


class CallerError(ConnectorError):
    http_status = 400


class UnknownProvider(CallerError):
    code = "unknown_provider"
    http_status = 400


class Unauthenticated(CallerError):
    code = "unauthenticated"
    http_status = 401


class NotConnected(CallerError):
    code = "not_connected"
    http_status = 404


class Disconnected(CallerError):
    code = "disconnected"
    http_status = 410


# ── Protocol errors ────────────────────────────────────────────────────────


class ProtocolError(ConnectorError):
    http_status = 400


class InvalidState(ProtocolError):
    code = "invalid_state"


class AuthorizationDenied(ProtocolError):
    code = "authorization_denied"
    http_status = 403


class ExchangeRejected(ProtocolError):
    code = "exchange_rejected"


# ── Provider-capability errors ─────────────────────────────────────────────


class CapabilityError(ConnectorError):
    http_status = 409


class RefreshUnsupported(CapabilityError):
    code = "refresh_unsupported"


class NeedsReauth(CapabilityError):
    code = "needs_reauth"


# ── Provider boundary (raised by adapters only) ────────────────────────────


class ProviderError(ConnectorError):
    """A provider call failed; ``status_code`` is the HTTP status if any."""

    def __init__(
        self,
        message: str = "",
        *,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, provider=provider)
        self.status_code = status_code


class ProviderRejected(ProviderError):
    """The provider actively returned an error (bad code, revoked consent…)."""

    code = "provider_rejected"
    http_status = 502


# ── Transient errors ───────────────────────────────────────────────────────


class TransientError(ConnectorError):
    http_status = 503


class ProviderUnavailable(ProviderError, TransientError):
    """Network failure, timeout, 5xx or rate limit.  Only this kind is retried."""

    code = "provider_unavailable"
    http_status = 503


class TransientFailure(TransientError):
    code = "transient_failure"


class ExchangeUnavailable(TransientError):
    """Provider down during the code exchange.  The code is spent; start a new flow."""

    code = "exchange_unavailable"


# ── Fatal / internal errors ────────────────────────────────────────────────


class FatalError(ConnectorError):
    http_status = 500


class ProviderMisconfigured(ProviderError, FatalError):
    """The provider refused the application's own client credentials."""

    code = "provider_misconfigured"
    http_status = 500


class ProviderNotConfigured(FatalError):
    code = "provider_not_configured"
    http_status = 503


class TokenEncryptionError(FatalError):
    code = "token_encryption_error"


class StoreUnavailable(FatalError):
    code = "store_unavailable"


class VersionConflict(FatalError):
    """A compare-and-swap targeted a stale version.  Handled internally."""

    code = "version_conflict"
    http_status = 409
