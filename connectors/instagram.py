"""
InstagramConnector — Instagram API with Instagram Login (business accounts).

Like Facebook, Instagram has no refresh token.  The code exchange returns a
one-hour token that is swapped for a 60-day one (``ig_exchange_token``), and
that long-lived token is later renewed with ``ig_refresh_token`` while it is
still valid.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from connectors.base import RefreshableConnector
from connectors.http import call_provider, raise_for_error_body, require_field
from connectors.schemas import TokenGrant

logger = logging.getLogger(__name__)

_GRAPH_URL = "https://graph.instagram.com"


class InstagramConnector(RefreshableConnector):
    """OAuth2 connector for Instagram business accounts."""

    @property
    def provider_name(self) -> str:
        return "instagram"

    def authorization_params(
        self,
        state: str,
        redirect_uri: str,
        code_challenge: Optional[str] = None,
    ) -> Dict[str, str]:
        params = super().authorization_params(state, redirect_uri, code_challenge)
        params["scope"] = ",".join(self.scopes)
        return params

    async def _long_lived(self, grant_type: str, url: str, token: str) -> TokenGrant:
        params = {"grant_type": grant_type, "access_token": token}
        if grant_type == "ig_exchange_token":
            params["client_secret"] = self.client_secret
        data = await call_provider(
            self.provider_name, "GET", url, params=params, transport=self._transport
        )
        raise_for_error_body(self.provider_name, data)
        return TokenGrant(
            access_token=require_field(self.provider_name, data, "access_token"),
            expires_at=self.expiry_from(data.get("expires_in")),
        )

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        *,
        code_verifier: Optional[str] = None,
    ) -> TokenGrant:
        payload = await call_provider(
            self.provider_name,
            "POST",
            self.capabilities.token_endpoint,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
                "code": code,
            },
            transport=self._transport,
        )
        raise_for_error_body(self.provider_name, payload)
        # Answered either flat or as {"data": [{...}]}.
        items = payload.get("data")
        token_data: Dict[str, Any] = items[0] if isinstance(items, list) and items else payload
        short_lived = require_field(self.provider_name, token_data, "access_token")

        grant = await self._long_lived(
            "ig_exchange_token", f"{_GRAPH_URL}/access_token", short_lived
        )

        profile = await call_provider(
            self.provider_name,
            "GET",
            f"{_GRAPH_URL}/me",
            params={"fields": "id,username,name", "access_token": grant.access_token},
            transport=self._transport,
        )
        permissions = token_data.get("permissions") or []
        if isinstance(permissions, str):
            permissions = permissions.split(",")
        user_id = profile.get("id") or token_data.get("user_id")

        return grant.model_copy(
            update={
                "scopes": [p for p in permissions if p],
                "account_id": str(user_id) if user_id else None,
                "account_label": profile.get("username") or profile.get("name"),
            }
        )

    async def refresh(self, refresh_token: str) -> TokenGrant:
        """Renew a long-lived token; ``refresh_token`` is the current access token."""
        return await self._long_lived(
            "ig_refresh_token", f"{_GRAPH_URL}/refresh_access_token", refresh_token
        )
