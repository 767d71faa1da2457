"""
Flow orchestrator — runs the OAuth authorization-code flow.

    IDLE → INITIATED → AWAITING_CALLBACK → EXCHANGED | FAILED

``initiate`` persists an ``AuthorizationState`` and hands back the provider
URL; ``handle_callback`` consumes that state exactly once, exchanges the code
and writes an ``active`` connection record.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from base64 import urlsafe_b64encode
from datetime import timedelta
from typing import Optional, Tuple

from config.settings import config
from connectors.base import BaseConnector
from connectors.capabilities import capabilities_for
from connectors.errors import (
    AuthorizationDenied,
    ExchangeRejected,
    ExchangeUnavailable,
    InvalidState,
    ProviderMisconfigured,
    ProviderRejected,
    ProviderUnavailable,
    VersionConflict,
)
from connectors.registry import ConnectorRegistry
from connectors.schemas import (
    AuthorizationState,
    ConnectionRecord,
    ConnectionStatus,
    FlowPhase,
    ProviderCapabilities,
    TokenGrant,
    utcnow,
)
from connectors.state import StateStore, sign_state, verify_state
from connectors.store import TokenStore

logger = logging.getLogger(__name__)

# Reconnecting is an explicit user action, so a concurrent refresh losing
# the race is expected; retry the write a few times before giving up.
_WRITE_ATTEMPTS = 3


def pkce_pair() -> Tuple[str, str]:
    """Return ``(code_verifier, code_challenge)`` using the S256 method."""
    verifier = secrets.token_urlsafe(64)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    return verifier, challenge


def callback_uri(provider: str) -> str:
    return f"{config.oauth_redirect_base.rstrip('/')}/api/v1/connectors/{provider}/callback"


class FlowOrchestrator:
    """Initiates authorization flows and completes them on callback."""

    def __init__(
        self,
        registry: ConnectorRegistry,
        token_store: TokenStore,
        state_store: StateStore,
        *,
        state_ttl: Optional[timedelta] = None,
        state_secret: Optional[str] = None,
        purge_every: Optional[int] = None,
    ) -> None:
        self._registry = registry
        self._tokens = token_store
        self._states = state_store
        self._state_ttl = (
            state_ttl if state_ttl is not None else timedelta(seconds=config.oauth_state_ttl_seconds)
        )
        self._state_secret = state_secret
        self._purge_every = config.oauth_state_purge_every if purge_every is None else purge_every
        self._initiated = 0

    # ── Initiate ────────────────────────────────────────────────────────

    async def initiate(self, user_id: str, provider: str) -> str:
        """
        Start a flow for ``user_id`` and return the provider authorization URL.

        Raises ``UnknownProvider`` or ``ProviderNotConfigured``.
        """
        caps = capabilities_for(provider)
        connector = self._registry.require(provider)

        nonce = secrets.token_urlsafe(32)
        verifier: Optional[str] = None
        challenge: Optional[str] = None
        if caps.uses_pkce:
            verifier, challenge = pkce_pair()

        state = AuthorizationState(
            nonce=nonce,
            provider=provider,
            user_id=user_id,
            redirect_uri=callback_uri(provider),
            code_verifier=verifier,
            phase=FlowPhase.INITIATED,
        )
        token = sign_state(nonce, provider, secret=self._state_secret)
        url = connector.build_authorization_url(
            token, state.redirect_uri, code_challenge=challenge
        )

        state = state.model_copy(update={"phase": FlowPhase.AWAITING_CALLBACK})
        await self._purge_if_due()
        await self._states.save(state)
        logger.info(
            "OAuth flow %s for user=%s provider=%s (pkce=%s)",
            state.phase.value, user_id, provider, caps.uses_pkce,
        )
        return url

    # ── Callback ────────────────────────────────────────────────────────

    async def handle_callback(
        self,
        state_token: str,
        *,
        code: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> ConnectionRecord:
        """
        Complete a flow.  The state nonce is consumed before anything else,
        so a replayed or concurrent duplicate callback fails with
        ``InvalidState`` and never reaches the provider.
        """
        nonce, state_provider = verify_state(state_token, secret=self._state_secret)
        if provider is not None and provider != state_provider:
            raise InvalidState(
                f"State was issued for '{state_provider}', not '{provider}'",
                provider=provider,
            )

        state = await self._states.consume(nonce, self._state_ttl)
        if state.provider != state_provider:
            raise InvalidState("State provider mismatch", provider=state_provider)

        if error:
            self._log_failed(state, error)
            raise AuthorizationDenied(
                f"{error}: {error_description}" if error_description else error,
                provider=state.provider,
            )
        if not code:
            self._log_failed(state, "missing code")
            raise ExchangeRejected("Callback carried no authorization code", provider=state.provider)

        caps = capabilities_for(state.provider)
        connector = self._registry.require(state.provider)
        grant = await self._exchange(connector, state, code)

        record = await self._store_grant(state, grant, caps)
        logger.info(
            "OAuth flow %s: user=%s provider=%s account=%s v%d",
            FlowPhase.EXCHANGED.value,
            state.user_id,
            state.provider,
            record.account_label or record.account_id or "-",
            record.version,
        )
        return record

    async def cleanup_expired_states(self) -> int:
        """Delete consumed and expired authorization states."""
        return await self._states.purge_expired(self._state_ttl)

    async def _purge_if_due(self) -> None:
        # Completed and abandoned flows both leave states behind; sweep them
        # here as well as at startup.
        if self._purge_every <= 0:
            return
        self._initiated += 1
        if self._initiated % self._purge_every == 0:
            purged = await self.cleanup_expired_states()
            logger.debug("Purged %d stale OAuth states after %d flows", purged, self._initiated)

    # ── Internals ───────────────────────────────────────────────────────

    async def _exchange(
        self, connector: BaseConnector, state: AuthorizationState, code: str
    ) -> TokenGrant:
        try:
            return await connector.exchange_code(
                code, state.redirect_uri, code_verifier=state.code_verifier
            )
        except ProviderRejected as exc:
            self._log_failed(state, exc.message)
            raise ExchangeRejected(
                f"{connector.display_name} rejected the authorization code: {exc.message}",
                provider=state.provider,
            ) from exc
        except ProviderUnavailable as exc:
            self._log_failed(state, exc.message)
            raise ExchangeUnavailable(
                f"{connector.display_name} is unavailable: {exc.message}",
                provider=state.provider,
            ) from exc
        except ProviderMisconfigured as exc:
            self._log_failed(state, exc.message)
            raise

    async def _store_grant(
        self,
        state: AuthorizationState,
        grant: TokenGrant,
        caps: ProviderCapabilities,
    ) -> ConnectionRecord:
        now = utcnow()
        refresh_token = grant.refresh_token if caps.supports_refresh else None
        if grant.refresh_token and not caps.supports_refresh:
            logger.debug("Dropping refresh token returned by %s", caps.provider)

        record = ConnectionRecord(
            user_id=state.user_id,
            provider=state.provider,
            access_token=grant.access_token,
            refresh_token=refresh_token,
            expires_at=grant.expires_at,
            scopes=grant.scopes or caps.required_scopes,
            status=ConnectionStatus.ACTIVE,
            account_id=grant.account_id,
            account_label=grant.account_label,
            connected_at=now,
        )

        for attempt in range(1, _WRITE_ATTEMPTS + 1):
            existing = await self._tokens.get(state.user_id, state.provider)
            try:
                if existing is None:
                    return await self._tokens.insert(record)
                return await self._tokens.compare_and_swap(record, existing.version)
            except VersionConflict:
                logger.warning(
                    "Connection write for %s/%s lost a race (attempt %d/%d)",
                    state.provider, state.user_id, attempt, _WRITE_ATTEMPTS,
                )
        raise VersionConflict(
            f"Could not store {state.provider} connection after {_WRITE_ATTEMPTS} attempts",
            provider=state.provider,
        )

    @staticmethod
    def _log_failed(state: AuthorizationState, reason: str) -> None:
        logger.warning(
            "OAuth flow %s: user=%s provider=%s reason=%s",
            FlowPhase.FAILED.value, state.user_id, state.provider, reason,
        )
