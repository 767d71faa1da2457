"""
OAuth authorization state — signed state tokens and single-use nonces.

The ``state`` query parameter sent to the provider is
``base64url(json{"n": nonce, "p": provider}) + "." + hmac_sha256``.  The
signature rejects forged or tampered values before any lookup; the nonce
itself is looked up and consumed exactly once.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import threading
from abc import ABC, abstractmethod
from base64 import urlsafe_b64decode, urlsafe_b64encode
from datetime import timedelta
from typing import Dict, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import config
from connectors.errors import InvalidState, StoreUnavailable
from connectors.schemas import AuthorizationState, FlowPhase, utcnow
from database.models import OAuthState

logger = logging.getLogger(__name__)


# ── State token helpers (CSRF protection) ──────────────────────────────


def _signature(raw: bytes, secret: Optional[str] = None) -> str:
    key = (secret or config.oauth_state_secret).encode()
    return hmac.new(key, raw, hashlib.sha256).hexdigest()


def sign_state(nonce: str, provider: str, *, secret: Optional[str] = None) -> str:
    """Create the opaque state string for ``nonce``."""
    raw = json.dumps({"n": nonce, "p": provider}, separators=(",", ":")).encode()
    return urlsafe_b64encode(raw).decode().rstrip("=") + "." + _signature(raw, secret)


def verify_state(token: str, *, secret: Optional[str] = None) -> Tuple[str, str]:
    """Verify a state string and return ``(nonce, provider)``."""
    try:
        encoded, sig = token.split(".", 1)
        raw = urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
        if not hmac.compare_digest(sig, _signature(raw, secret)):
            raise ValueError("bad signature")
        payload = json.loads(raw)
        return payload["n"], payload["p"]
    except (ValueError, KeyError, TypeError) as exc:
        raise InvalidState(f"Invalid OAuth state: {exc}") from exc


# ── Stores ───────────────────────────────────────────────────────────────


class StateStore(ABC):
    @abstractmethod
    async def save(self, state: AuthorizationState) -> None:
        ...

    @abstractmethod
    async def consume(self, nonce: str, ttl: timedelta) -> AuthorizationState:
        """
        Atomically mark ``nonce`` as consumed and return its state.

        Raises ``InvalidState`` if the nonce is unknown, already consumed or
        older than ``ttl``.  Of two concurrent calls for one nonce, exactly
        one succeeds.
        """
        ...

    @abstractmethod
    async def purge_expired(self, ttl: timedelta) -> int:
        ...


class InMemoryStateStore(StateStore):
    def __init__(self) -> None:
        self._states: Dict[str, AuthorizationState] = {}
        self._lock = threading.Lock()

    async def save(self, state: AuthorizationState) -> None:
        with self._lock:
            self._states[state.nonce] = state

    async def consume(self, nonce: str, ttl: timedelta) -> AuthorizationState:
        with self._lock:
            state = self._states.get(nonce)
            if state is None:
                raise InvalidState("Invalid or expired state token")
            if state.consumed:
                raise InvalidState("State token already used", provider=state.provider)
            if state.is_expired(ttl):
                del self._states[nonce]
                raise InvalidState("State token expired", provider=state.provider)
            consumed = state.model_copy(update={"consumed": True})
            self._states[nonce] = consumed
        return consumed

    async def purge_expired(self, ttl: timedelta) -> int:
        with self._lock:
            stale = [n for n, s in self._states.items() if s.consumed or s.is_expired(ttl)]
            for nonce in stale:
                del self._states[nonce]
        return len(stale)


class SqlStateStore(StateStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(self, state: AuthorizationState) -> None:
        try:
            async with self._session_factory() as session:
                session.add(
                    OAuthState(
                        nonce=state.nonce,
                        provider=state.provider,
                        user_id=state.user_id,
                        redirect_uri=state.redirect_uri,
                        code_verifier=state.code_verifier,
                        phase=state.phase.value,
                        created_at=state.created_at,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Saving OAuth state failed: %s", exc)
            raise StoreUnavailable(f"State store write failed: {exc}", provider=state.provider) from exc

    async def consume(self, nonce: str, ttl: timedelta) -> AuthorizationState:
        now = utcnow()
        try:
            async with self._session_factory() as session:
                # The conditional UPDATE is the check-and-set; only one caller
                # can flip consumed_at from NULL.
                result = await session.execute(
                    update(OAuthState)
                    .where(
                        OAuthState.nonce == nonce,
                        OAuthState.consumed_at.is_(None),
                        OAuthState.created_at > now - ttl,
                    )
                    .values(consumed_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    await session.rollback()
                    raise InvalidState("Invalid, expired or already used state token")
                await session.commit()
                row = (
                    await session.execute(select(OAuthState).where(OAuthState.nonce == nonce))
                ).scalar_one()
        except SQLAlchemyError as exc:
            logger.error("Consuming OAuth state failed: %s", exc)
            raise StoreUnavailable(f"State store write failed: {exc}") from exc
        return AuthorizationState(
            nonce=row.nonce,
            provider=row.provider,
            user_id=row.user_id,
            redirect_uri=row.redirect_uri,
            code_verifier=row.code_verifier,
            created_at=row.created_at,
            consumed=True,
            phase=FlowPhase(row.phase),
        )

    async def purge_expired(self, ttl: timedelta) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(OAuthState).where(
                        (OAuthState.created_at <= utcnow() - ttl)
                        | OAuthState.consumed_at.is_not(None)
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Purging OAuth states failed: %s", exc)
            raise StoreUnavailable(f"State store write failed: {exc}") from exc
        count = result.rowcount or 0
        if count:
            logger.info("Cleaned up %d expired OAuth states", count)
        return count
