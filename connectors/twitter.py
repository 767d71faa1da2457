"""
TwitterConnector — OAuth 2.0 (PKCE) for X / Twitter.

Confidential clients authenticate to the token and revoke endpoints with
HTTP Basic.  A refresh token is only issued when ``offline.access`` is among
the requested scopes, and X rotates it on every refresh.
"""

from __future__ import annotations

import logging
from typing import Optional

from connectors.base import RefreshableConnector, RevocableConnector
from connectors.http import call_provider, raise_for_error_body, require_field
from connectors.schemas import TokenGrant

logger = logging.getLogger(__name__)

_TWITTER_ME_URL = "https://api.twitter.com/2/users/me"


class TwitterConnector(RefreshableConnector, RevocableConnector):
    """OAuth2 connector for X (Twitter)."""

    @property
    def provider_name(self) -> str:
        return "twitter"

    @property
    def _basic_auth(self) -> tuple[str, str]:
        return (self.client_id, self.client_secret)

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        *,
        code_verifier: Optional[str] = None,
    ) -> TokenGrant:
        """Exchange auth code for tokens and fetch the account handle."""
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        if code_verifier:
            data["code_verifier"] = code_verifier
        token_data = await call_provider(
            self.provider_name,
            "POST",
            self.capabilities.token_endpoint,
            data=data,
            auth=self._basic_auth,
            transport=self._transport,
        )
        raise_for_error_body(self.provider_name, token_data)
        access_token = require_field(self.provider_name, token_data, "access_token")

        me = await call_provider(
            self.provider_name,
            "GET",
            _TWITTER_ME_URL,
            params={"user.fields": "profile_image_url"},
            headers={"Authorization": f"Bearer {access_token}"},
            transport=self._transport,
        )
        user = me.get("data") or {}

        return TokenGrant(
            access_token=access_token,
            refresh_token=token_data.get("refresh_token"),
            expires_at=self.expiry_from(token_data.get("expires_in")),
            scopes=token_data.get("scope", "").split(),
            account_id=user.get("id"),
            account_label=user.get("username"),
        )

    async def refresh(self, refresh_token: str) -> TokenGrant:
        data = await call_provider(
            self.provider_name,
            "POST",
            self.capabilities.token_endpoint,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            auth=self._basic_auth,
            transport=self._transport,
        )
        raise_for_error_body(self.provider_name, data)
        return TokenGrant(
            access_token=require_field(self.provider_name, data, "access_token"),
            refresh_token=data.get("refresh_token"),
            expires_at=self.expiry_from(data.get("expires_in")),
            scopes=data.get("scope", "").split(),
        )

    async def revoke(self, token: str) -> None:
        await call_provider(
            self.provider_name,
            "POST",
            self.capabilities.revoke_endpoint,
            data={"token": token, "token_type_hint": "access_token"},
            auth=self._basic_auth,
            expect_json=False,
            transport=self._transport,
        )
