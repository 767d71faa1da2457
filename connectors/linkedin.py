"""
LinkedInConnector — OAuth2 for LinkedIn (OpenID Connect sign-in + posting).

LinkedIn does not hand out refresh tokens to standard apps, so this class
derives from ``BaseConnector`` only.  When the 60-day access token runs out
the user has to go through the authorization flow again.
"""

from __future__ import annotations

import logging
from typing import Optional

from connectors.base import BaseConnector
from connectors.http import call_provider, raise_for_error_body, require_field
from connectors.schemas import TokenGrant

logger = logging.getLogger(__name__)

_LINKEDIN_USERINFO_URL = "https://api.linkedin.com/v2/userinfo"


class LinkedInConnector(BaseConnector):
    """OAuth2 connector for LinkedIn."""

    @property
    def provider_name(self) -> str:
        return "linkedin"

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        *,
        code_verifier: Optional[str] = None,
    ) -> TokenGrant:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
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

        # OpenID Connect userinfo; LinkedIn has no usernames, so email stands in.
        user = await call_provider(
            self.provider_name,
            "GET",
            _LINKEDIN_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=self._transport,
        )

        if token_data.get("refresh_token"):
            logger.debug("Ignoring refresh_token returned by LinkedIn")

        return TokenGrant(
            access_token=access_token,
            expires_at=self.expiry_from(token_data.get("expires_in")),
            scopes=token_data.get("scope", "").replace(",", " ").split(),
            account_id=user.get("sub"),
            account_label=user.get("email") or user.get("name"),
        )
