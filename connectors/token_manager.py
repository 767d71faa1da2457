"""
Token manager — get / refresh / revoke per-user OAuth tokens.

``ensure_valid_token`` is the single interface every token consumer calls
for a user + provider combination.  Refreshes are single-flight per
(user, provider): concurrent callers join one ``asyncio.Task`` instead of
spending the same refresh token twice.  Every write goes through the store's
compare-and-swap, and no storage call is held open across a provider call.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from config.settings import config
from connectors.base import RefreshableConnector, RevocableConnector, require_refresh
from connectors.capabilities import capabilities_for
from connectors.errors import (
    ConnectorError,
    Disconnected,
    NeedsReauth,
    NotConnected,
    ProviderRejected,
    ProviderUnavailable,
    TransientFailure,
    VersionConflict,
)
from connectors.registry import ConnectorRegistry
from connectors.schemas import ConnectionRecord, ConnectionStatus, TokenGrant, utcnow
from connectors.store import TokenStore

logger = logging.getLogger(__name__)

_Key = Tuple[str, str]

# Bounded retries for bookkeeping writes (needs_reauth / revoked) that race
# with another writer.
_WRITE_ATTEMPTS = 3


def _with(record: ConnectionRecord, **changes: Any) -> ConnectionRecord:
    """Copy of ``record`` with ``changes`` applied and re-validated."""
    return ConnectionRecord(**{**record.model_dump(), **changes})


def _refresh_credential(record: ConnectionRecord) -> Optional[str]:
    """
    The secret a refresh spends: the refresh token, or the access token
    itself for long-lived-token providers.
    """
    if capabilities_for(record.provider).refresh_with_access_token:
        return record.access_token
    return record.refresh_token


def _check_status(record: Optional[ConnectionRecord], user_id: str, provider: str) -> ConnectionRecord:
    if record is None:
        raise NotConnected(f"No {provider} connection for user {user_id}", provider=provider)
    if record.status == ConnectionStatus.REVOKED:
        raise Disconnected(f"{provider} connection was disconnected", provider=provider)
    if record.status == ConnectionStatus.NEEDS_REAUTH:
        raise NeedsReauth(
            record.error_message or f"{provider} connection needs to be re-authorized",
            provider=provider,
        )
    return record


class TokenManager:
    """Hands out valid access tokens and keeps connection records current."""

    def __init__(
        self,
        store: TokenStore,
        registry: ConnectorRegistry,
        *,
        refresh_buffer: Optional[timedelta] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        backoff_multiplier: Optional[float] = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._buffer = (
            refresh_buffer
            if refresh_buffer is not None
            else timedelta(seconds=config.token_refresh_buffer_seconds)
        )
        self._max_retries = config.refresh_max_retries if max_retries is None else max_retries
        self._backoff = config.refresh_backoff_seconds if backoff_seconds is None else backoff_seconds
        self._multiplier = (
            config.refresh_backoff_multiplier if backoff_multiplier is None else backoff_multiplier
        )
        self._inflight: Dict[_Key, asyncio.Task] = {}

    # ═══════════════════════════════════════════════════════════════════
    # Valid token
    # ═══════════════════════════════════════════════════════════════════

    async def ensure_valid_token(self, user_id: str, provider: str) -> str:
        """
        Return a usable access token for ``user_id`` on ``provider``.

        Raises
        ------
        NotConnected      no record exists
        Disconnected      the user disconnected the provider
        NeedsReauth       the user has to run the OAuth flow again
        TransientFailure  the provider could not be reached; retry later
        """
        caps = capabilities_for(provider)
        record = _check_status(await self._store.get(user_id, provider), user_id, provider)

        if not record.expires_within(self._buffer):
            return record.access_token

        if not caps.supports_refresh:
            return await self._reauth_required(
                record,
                f"{caps.display_name} does not support token refresh. User must re-authenticate.",
            )

        return await self._single_flight(user_id, provider)

    async def _single_flight(self, user_id: str, provider: str) -> str:
        key = (user_id, provider)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._refresh_flight(user_id, provider))
            self._inflight[key] = task
            task.add_done_callback(lambda t, key=key: self._forget(key, t))
        else:
            logger.debug("Joining in-flight %s refresh for user %s", provider, user_id)
        # A cancelled caller must not cancel the refresh other callers wait on.
        return await asyncio.shield(task)

    def _forget(self, key: _Key, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the outcome retrieved even if every caller was cancelled.
            task.exception()

    async def _refresh_flight(self, user_id: str, provider: str) -> str:
        # Re-read: a flight starting right after another one finished sees
        # the fresh token and returns it without calling the provider.
        record = _check_status(await self._store.get(user_id, provider), user_id, provider)
        if not record.expires_within(self._buffer):
            return record.access_token
        credential = _refresh_credential(record)
        if not credential:
            return await self._reauth_required(
                record, f"No refresh token stored for {provider}. User must re-authenticate."
            )

        connector = require_refresh(self._registry.require(provider))
        try:
            grant = await self._refresh_with_retry(connector, record, credential)
        except ProviderRejected as exc:
            return await self._reauth_required(record, f"Refresh rejected: {exc.message}")

        updated = _with(
            record,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or record.refresh_token,
            expires_at=grant.expires_at,
            scopes=grant.scopes or record.scopes,
            status=ConnectionStatus.ACTIVE,
            last_refreshed_at=utcnow(),
            error_message=None,
        )
        try:
            stored = await self._store.compare_and_swap(updated, record.version)
        except VersionConflict:
            # Another process refreshed first; its result wins.
            current = _check_status(await self._store.get(user_id, provider), user_id, provider)
            logger.info(
                "Refresh of %s for user %s lost a race; using v%d",
                provider, user_id, current.version,
            )
            return current.access_token

        logger.info("Refreshed %s token for user %s (v%d)", provider, user_id, stored.version)
        return stored.access_token

    async def _refresh_with_retry(
        self, connector: RefreshableConnector, record: ConnectionRecord, credential: str
    ) -> TokenGrant:
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            try:
                return await connector.refresh(credential)
            except ProviderUnavailable as exc:
                if attempt + 1 >= attempts:
                    logger.warning(
                        "Token refresh for %s/%s unavailable after %d attempts: %s",
                        record.provider, record.user_id, attempts, exc.message,
                    )
                    raise TransientFailure(
                        f"{connector.display_name} is temporarily unavailable; try again later",
                        provider=record.provider,
                    ) from exc
                delay = self._backoff * (self._multiplier ** attempt)
                logger.info(
                    "Token refresh for %s/%s unavailable (%s); retry %d/%d in %.2fs",
                    record.provider, record.user_id, exc.message,
                    attempt + 1, self._max_retries, delay,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    async def _reauth_required(self, record: ConnectionRecord, reason: str) -> str:
        """
        Mark ``record`` as ``needs_reauth`` and raise ``NeedsReauth``.

        Returns a token only when a concurrent writer (a reconnect or a
        refresh) already replaced the record with a fresh active one.
        """
        current = record
        for _ in range(_WRITE_ATTEMPTS):
            marked = _with(current, status=ConnectionStatus.NEEDS_REAUTH, error_message=reason)
            try:
                await self._store.compare_and_swap(marked, current.version)
                break
            except VersionConflict:
                current = _check_status(
                    await self._store.get(record.user_id, record.provider),
                    record.user_id,
                    record.provider,
                )
                if not current.expires_within(self._buffer):
                    return current.access_token
        logger.warning("%s/%s needs re-authorization: %s", record.provider, record.user_id, reason)
        raise NeedsReauth(reason, provider=record.provider)

    # ═══════════════════════════════════════════════════════════════════
    # Disconnect / listing
    # ═══════════════════════════════════════════════════════════════════

    async def disconnect(self, user_id: str, provider: str) -> ConnectionRecord:
        """
        Revoke at the provider when possible, then mark the record ``revoked``
        and clear its tokens.  The local write happens whatever the revoke
        call does.
        """
        capabilities_for(provider)
        record = await self._store.get(user_id, provider)
        if record is None:
            raise NotConnected(f"No {provider} connection for user {user_id}", provider=provider)
        if record.status == ConnectionStatus.REVOKED:
            return record

        try:
            await self._revoke_remote(record)
        finally:
            revoked = await self._mark_revoked(user_id, provider)
        logger.info("Disconnected %s for user %s", provider, user_id)
        return revoked

    async def _revoke_remote(self, record: ConnectionRecord) -> None:
        connector = self._registry.get(record.provider)
        if not isinstance(connector, RevocableConnector) or not record.access_token:
            return
        try:
            await connector.revoke(record.access_token)
        except ConnectorError as exc:
            # Best effort: the local record is revoked regardless.
            logger.warning(
                "Revoking %s token for user %s failed: %s",
                record.provider, record.user_id, exc.message,
            )

    async def _mark_revoked(self, user_id: str, provider: str) -> ConnectionRecord:
        for _ in range(_WRITE_ATTEMPTS):
            current = await self._store.get(user_id, provider)
            if current is None:
                raise NotConnected(f"No {provider} connection for user {user_id}", provider=provider)
            revoked = _with(
                current,
                status=ConnectionStatus.REVOKED,
                access_token="",
                refresh_token=None,
                expires_at=None,
                error_message=None,
            )
            try:
                return await self._store.compare_and_swap(revoked, current.version)
            except VersionConflict:
                logger.debug("Disconnect of %s/%s raced a writer; retrying", provider, user_id)
        raise VersionConflict(
            f"Could not mark {provider} connection revoked after {_WRITE_ATTEMPTS} attempts",
            provider=provider,
        )

    async def get_connection(self, user_id: str, provider: str) -> ConnectionRecord:
        capabilities_for(provider)
        record = await self._store.get(user_id, provider)
        if record is None:
            raise NotConnected(f"No {provider} connection for user {user_id}", provider=provider)
        return record

    async def list_connections(self, user_id: str) -> List[Dict[str, Any]]:
        """Return all connections for a user (no tokens exposed)."""
        return [r.summary() for r in await self._store.list_for_user(user_id)]
