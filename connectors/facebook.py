"""
FacebookConnector — Facebook Login for Pages.

The code exchange yields a short-lived user token, which is immediately
traded for a ~60-day long-lived one.  Facebook never issues a refresh token:
"refreshing" means trading the current long-lived token for a new one, which
only works while it is still valid.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from connectors.base import RefreshableConnector
from connectors.http import call_provider, raise_for_error_body, require_field
from connectors.schemas import TokenGrant

logger = logging.getLogger(__name__)

_FACEBOOK_PAGES_URL = "https://graph.facebook.com/v18.0/me/accounts"


class FacebookConnector(RefreshableConnector):
    """OAuth2 connector for Facebook Pages."""

    @property
    def provider_name(self) -> str:
        return "facebook"

    def authorization_params(
        self,
        state: str,
        redirect_uri: str,
        code_challenge: Optional[str] = None,
    ) -> Dict[str, str]:
        params = super().authorization_params(state, redirect_uri, code_challenge)
        params["scope"] = ",".join(self.scopes)
        return params

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        *,
        code_verifier: Optional[str] = None,
    ) -> TokenGrant:
        """Exchange the code, upgrade to a long-lived token, find the first Page."""
        token_data = await call_provider(
            self.provider_name,
            "POST",
            self.capabilities.token_endpoint,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
            transport=self._transport,
        )
        raise_for_error_body(self.provider_name, token_data)
        short_lived = require_field(self.provider_name, token_data, "access_token")
        grant = await self.refresh(short_lived)

        pages = await call_provider(
            self.provider_name,
            "GET",
            _FACEBOOK_PAGES_URL,
            params={"fields": "id,name"},
            headers={"Authorization": f"Bearer {grant.access_token}"},
            transport=self._transport,
        )
        items = pages.get("data") or []
        page = items[0] if items else {}
        if not page:
            logger.warning("Facebook user manages no Pages; connecting without profile")

        return grant.model_copy(
            update={"account_id": page.get("id"), "account_label": page.get("name")}
        )

    async def refresh(self, refresh_token: str) -> TokenGrant:
        """Trade a valid user token (short- or long-lived) for a long-lived one."""
        data = await call_provider(
            self.provider_name,
            "GET",
            self.capabilities.token_endpoint,
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "fb_exchange_token": refresh_token,
            },
            transport=self._transport,
        )
        raise_for_error_body(self.provider_name, data)
        return TokenGrant(
            access_token=require_field(self.provider_name, data, "access_token"),
            expires_at=self.expiry_from(data.get("expires_in")),
        )
