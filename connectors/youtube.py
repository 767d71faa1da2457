"""
YouTubeConnector — Google OAuth2 web flow scoped to YouTube.

Google issues a refresh token only when ``access_type=offline`` is requested,
and only reliably when consent is forced, so both are always sent.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from connectors.base import RefreshableConnector, RevocableConnector
from connectors.http import call_provider, raise_for_error_body, require_field
from connectors.schemas import TokenGrant

logger = logging.getLogger(__name__)

_YOUTUBE_CHANNELS_URL = "https://www.googleapis.com/youtube/v3/channels"


class YouTubeConnector(RefreshableConnector, RevocableConnector):
    """OAuth2 connector for YouTube."""

    @property
    def provider_name(self) -> str:
        return "youtube"

    def authorization_params(
        self,
        state: str,
        redirect_uri: str,
        code_challenge: Optional[str] = None,
    ) -> Dict[str, str]:
        params = super().authorization_params(state, redirect_uri, code_challenge)
        params["access_type"] = "offline"   # gets refresh_token
        params["prompt"] = "consent"        # force consent to always get refresh_token
        return params

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        *,
        code_verifier: Optional[str] = None,
    ) -> TokenGrant:
        """Exchange auth code for tokens, then look up the user's channel."""
        data = {
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }
        if code_verifier:
            data["code_verifier"] = code_verifier
        token_data = await call_provider(
            self.provider_name,
            "POST",
            self.capabilities.token_endpoint,
            data=data,
            transport=self._transport,
        )
        raise_for_error_body(self.provider_name, token_data)
        access_token = require_field(self.provider_name, token_data, "access_token")

        channels = await call_provider(
            self.provider_name,
            "GET",
            _YOUTUBE_CHANNELS_URL,
            params={"part": "snippet", "mine": "true"},
            headers={"Authorization": f"Bearer {access_token}"},
            transport=self._transport,
        )
        items = channels.get("items") or []
        channel = items[0] if items else {}
        if not channel:
            logger.warning("YouTube account has no channel; connecting without profile")

        return TokenGrant(
            access_token=access_token,
            refresh_token=token_data.get("refresh_token"),
            expires_at=self.expiry_from(token_data.get("expires_in")),
            scopes=token_data.get("scope", "").split(),
            account_id=channel.get("id"),
            account_label=(channel.get("snippet") or {}).get("title"),
        )

    async def refresh(self, refresh_token: str) -> TokenGrant:
        """Use refresh token to get a new access token."""
        data = await call_provider(
            self.provider_name,
            "POST",
            self.capabilities.token_endpoint,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
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
        """Revoke the token at Google."""
        await call_provider(
            self.provider_name,
            "POST",
            self.capabilities.revoke_endpoint,
            params={"token": token},
            expect_json=False,
            transport=self._transport,
        )
