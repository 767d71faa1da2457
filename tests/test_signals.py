"""
Tests for the reauth signaler.
"""

import pytest

from connectors.capabilities import capabilities_for
from connectors.errors import (
    AuthorizationDenied,
    Disconnected,
    ExchangeRejected,
    ExchangeUnavailable,
    InvalidState,
    NeedsReauth,
    NotConnected,
    ProviderMisconfigured,
    ProviderNotConfigured,
    ProviderRejected,
    ProviderUnavailable,
    RefreshUnsupported,
    StoreUnavailable,
    TokenEncryptionError,
    TransientFailure,
    Unauthenticated,
    UnknownProvider,
)
from connectors.signals import ReauthSignal, classify, describe


@pytest.mark.parametrize(
    "error",
    [
        ProviderUnavailable("down", provider="youtube", status_code=503),
        TransientFailure("later"),
    ],
)
def test_transient_errors_are_retryable(error):
    assert classify(error) == ReauthSignal.RETRYABLE


@pytest.mark.parametrize(
    "error",
    [
        NeedsReauth("reconnect"),
        RefreshUnsupported("no refresh"),
        InvalidState("bad state"),
        AuthorizationDenied("denied"),
        ExchangeRejected("bad code"),
        NotConnected("none"),
        Disconnected("gone"),
        ProviderRejected("invalid_grant", provider="tiktok", status_code=400),
        ExchangeUnavailable("code already spent"),
    ],
)
def test_reconnect_errors_need_reauth(error):
    assert classify(error) == ReauthSignal.NEEDS_REAUTH


@pytest.mark.parametrize(
    "error",
    [
        UnknownProvider("myspace"),
        Unauthenticated("no session"),
        ProviderNotConfigured("missing client id"),
        ProviderMisconfigured("invalid_client", provider="pinterest", status_code=401),
        TokenEncryptionError("no key"),
        StoreUnavailable("db down"),
        RuntimeError("bug"),
    ],
)
def test_everything_else_is_fatal(error):
    assert classify(error) == ReauthSignal.FATAL


def test_no_refresh_capability_still_signals_reauth():
    caps = capabilities_for("linkedin")
    assert classify(NeedsReauth("expired"), caps) == ReauthSignal.NEEDS_REAUTH


@pytest.mark.parametrize(
    "status, expected",
    [
        (500, ReauthSignal.RETRYABLE),
        (503, ReauthSignal.RETRYABLE),
        (429, ReauthSignal.RETRYABLE),
        (401, ReauthSignal.NEEDS_REAUTH),
        (403, ReauthSignal.NEEDS_REAUTH),
        (400, ReauthSignal.FATAL),
        (None, ReauthSignal.FATAL),
    ],
)
def test_http_status_for_unclassified_errors(status, expected):
    assert classify(OSError("socket"), http_status=status) == expected


def test_http_status_does_not_override_taxonomy():
    assert classify(ProviderRejected("no"), http_status=503) == ReauthSignal.NEEDS_REAUTH


def test_describe_connector_error():
    body = describe(NeedsReauth("Reconnect LinkedIn", provider="linkedin"))
    assert body == {
        "error": "needs_reauth",
        "signal": "needs_reauth",
        "message": "Reconnect LinkedIn",
        "provider": "linkedin",
    }


def test_describe_unexpected_error():
    body = describe(ValueError("boom"))
    assert body["error"] == "internal_error"
    assert body["signal"] == "fatal"
    assert body["message"] == "boom"


def test_failed_exchange_asks_for_a_new_flow():
    body = describe(ExchangeUnavailable("YouTube is unavailable", provider="youtube"))
    assert body["signal"] == "needs_reauth"
    assert body["error"] == "exchange_unavailable"
