"""
PinterestConnector — Pinterest API v5.

The token endpoint takes the client credentials as HTTP Basic.  Access tokens
last 30 days and the refresh token a year; Pinterest does not rotate the
refresh token by default.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from connectors.base import RefreshableConnector
from connectors.http import call_provider, raise_for_error_body, require_field
from connectors.schemas import TokenGrant

logger = logging.getLogger(__name__)

_PINTEREST_ACCOUNT_URL = "https://api.pinterest.com/v5/user_account"


class PinterestConnector(RefreshableConnector):
    """OAuth2 connector for Pinterest."""

    @property
    def provider_name(self) -> str:
        return "pinterest"

    def authorization_params(
        self,
        state: str,
        redirect_uri: str,
        code_challenge: Optional[str] = None,
    ) -> Dict[str, str]:
        params = super().authorization_params(state, redirect_uri, code_challenge)
        params["scope"] = ",".join(self.scopes)
        return params

    async def _token(self, form: Dict[str, str]) -> Dict[str, Any]:
        data = await call_provider(
            self.provider_name,
            "POST",
            self.capabilities.token_endpoint,
            data=form,
            auth=(self.client_id, self.client_secret),
            transport=self._transport,
        )
        raise_for_error_body(self.provider_name, data)
        return data

    def _grant(self, data: Dict[str, Any]) -> TokenGrant:
        return TokenGrant(
            access_token=require_field(self.provider_name, data, "access_token"),
            refresh_token=data.get("refresh_token"),
            expires_at=self.expiry_from(data.get("expires_in")),
            scopes=(data.get("scope") or "").replace(",", " ").split(),
        )

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        *,
        code_verifier: Optional[str] = None,
    ) -> TokenGrant:
        grant = self._grant(
            await self._token(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": redirect_uri,
                }
            )
        )

        account = await call_provider(
            self.provider_name,
            "GET",
            _PINTEREST_ACCOUNT_URL,
            headers={"Authorization": f"Bearer {grant.access_token}"},
            transport=self._transport,
        )
        username = account.get("username")

        return grant.model_copy(
            update={
                "account_id": account.get("id") or username,
                "account_label": username,
            }
        )

    async def refresh(self, refresh_token: str) -> TokenGrant:
        return self._grant(
            await self._token({"grant_type": "refresh_token", "refresh_token": refresh_token})
        )
