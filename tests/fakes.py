"""
In-process provider adapters for tests.
"""

import asyncio
from datetime import timedelta
from typing import Awaitable, Callable, List, Optional

from connectors.base import BaseConnector, RefreshableConnector, RevocableConnector
from connectors.schemas import TokenGrant, utcnow


class FakeConnector(BaseConnector):
    """Adapter with no refresh support; records every exchange."""

    def __init__(self, provider: str = "linkedin", grant: Optional[TokenGrant] = None) -> None:
        super().__init__()
        self._provider = provider
        self.grant = grant or TokenGrant(
            access_token=f"{provider}-access",
            refresh_token=f"{provider}-refresh",
            expires_at=utcnow() + timedelta(hours=1),
            scopes=["profile", "email"],
            account_id="acct-1",
            account_label="Test Account",
        )
        self.exchange_calls: List[tuple] = []
        self.exchange_error: Optional[Exception] = None

    @property
    def provider_name(self) -> str:
        return self._provider

    async def exchange_code(self, code, redirect_uri, *, code_verifier=None) -> TokenGrant:
        self.exchange_calls.append((code, redirect_uri, code_verifier))
        await asyncio.sleep(0)
        if self.exchange_error is not None:
            raise self.exchange_error
        return self.grant


class FakeRefreshableConnector(FakeConnector, RefreshableConnector, RevocableConnector):
    """Refresh + revoke capable adapter with scriptable failures."""

    def __init__(self, provider: str = "youtube", grant: Optional[TokenGrant] = None) -> None:
        super().__init__(provider, grant)
        self.refresh_calls = 0
        self.refreshed_with: List[str] = []
        self.refresh_errors: List[Exception] = []
        self.refresh_delay = 0.0
        self.before_return: Optional[Callable[[], Awaitable[None]]] = None
        self.revoked: List[str] = []
        self.revoke_error: Optional[BaseException] = None

    async def refresh(self, refresh_token: str) -> TokenGrant:
        self.refresh_calls += 1
        self.refreshed_with.append(refresh_token)
        await asyncio.sleep(self.refresh_delay)
        if self.refresh_errors:
            raise self.refresh_errors.pop(0)
        if self.before_return is not None:
            await self.before_return()
        return TokenGrant(
            access_token=f"refreshed-{self.refresh_calls}",
            refresh_token=f"rotated-{self.refresh_calls}",
            expires_at=utcnow() + timedelta(hours=1),
        )

    async def revoke(self, token: str) -> None:
        self.revoked.append(token)
        if self.revoke_error is not None:
            raise self.revoke_error
