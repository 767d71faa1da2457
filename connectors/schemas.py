"""
Pydantic schemas for connection records, authorization state and token grants.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ConnectionStatus(str, Enum):
    ACTIVE = "active"
    NEEDS_REAUTH = "needs_reauth"
    REVOKED = "revoked"


class FlowPhase(str, Enum):
    IDLE = "idle"
    INITIATED = "initiated"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGED = "exchanged"
    FAILED = "failed"


# ═══════════════════════════════════════════════════════════════════════════════
# Provider metadata / adapter results
# ═══════════════════════════════════════════════════════════════════════════════


class ProviderCapabilities(BaseModel):
    """Static metadata for one provider.  Read-only for the process lifetime."""

    model_config = ConfigDict(frozen=True)

    provider: str
    display_name: str
    supports_refresh: bool
    access_token_ttl_hint: Optional[timedelta] = None
    authorize_endpoint: str
    token_endpoint: str
    revoke_endpoint: Optional[str] = None
    required_scopes: List[str] = Field(default_factory=list)
    uses_pkce: bool = False
    # Long-lived-token providers renew by exchanging the current access token.
    refresh_with_access_token: bool = False


class TokenGrant(BaseModel):
    """What an adapter hands back from a code exchange or a refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scopes: List[str] = Field(default_factory=list)
    account_id: Optional[str] = None
    account_label: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# Stored records
# ═══════════════════════════════════════════════════════════════════════════════


class ConnectionRecord(BaseModel):
    """
    One connection per (user, provider).

    Frozen: every component works on a copy and writes back through the
    store's compare-and-swap.  ``version`` starts at 1 and is owned by the
    store.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    provider: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scopes: List[str] = Field(default_factory=list)
    status: ConnectionStatus = ConnectionStatus.ACTIVE
    last_refreshed_at: Optional[datetime] = None
    version: int = 1
    account_id: Optional[str] = None
    account_label: Optional[str] = None
    connected_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    error_message: Optional[str] = None

    @field_validator("scopes", mode="before")
    @classmethod
    def _normalise_scopes(cls, value: Any) -> List[str]:
        if value is None:
            return []
        return sorted({str(s) for s in value if s})

    @field_validator("expires_at", "last_refreshed_at", "connected_at", "updated_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.provider)

    def expires_within(self, margin: timedelta, *, now: Optional[datetime] = None) -> bool:
        """True when the access token is expired or expires inside ``margin``."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow()) + margin

    def summary(self) -> Dict[str, Any]:
        """Public view of the record.  Never includes token material."""
        return {
            "provider": self.provider,
            "status": self.status.value,
            "account_id": self.account_id,
            "account_label": self.account_label,
            "scopes": list(self.scopes),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "last_refreshed_at": (
                self.last_refreshed_at.isoformat() if self.last_refreshed_at else None
            ),
            "connected_at": self.connected_at.isoformat(),
            "version": self.version,
            "error_message": self.error_message,
        }


class AuthorizationState(BaseModel):
    """Ephemeral state for one authorization-code flow."""

    model_config = ConfigDict(frozen=True)

    nonce: str
    provider: str
    user_id: str
    redirect_uri: str
    code_verifier: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    consumed: bool = False
    phase: FlowPhase = FlowPhase.IDLE

    @field_validator("created_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return as_utc(value)

    def is_expired(self, ttl: timedelta, *, now: Optional[datetime] = None) -> bool:
        return self.created_at + ttl <= (now or utcnow())
