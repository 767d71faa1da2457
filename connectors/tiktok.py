"""
TikTokConnector — TikTok Login Kit (OAuth2 v2).

TikTok differs from the usual shape in two ways: the client id is sent as
``client_key``, and errors come back inside an envelope on HTTP 200::

    {"data": {...}, "error": {"code": "access_token_invalid", "message": "..."}}
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from connectors.base import RefreshableConnector, RevocableConnector
from connectors.http import call_provider, raise_for_error_body, require_field
from connectors.schemas import TokenGrant

logger = logging.getLogger(__name__)

_TIKTOK_USERINFO_URL = "https://open.tiktokapis.com/v2/user/info/"


class TikTokConnector(RefreshableConnector, RevocableConnector):
    """OAuth2 connector for TikTok."""

    @property
    def provider_name(self) -> str:
        return "tiktok"

    def authorization_params(
        self,
        state: str,
        redirect_uri: str,
        code_challenge: Optional[str] = None,
    ) -> Dict[str, str]:
        params = super().authorization_params(state, redirect_uri, code_challenge)
        params["client_key"] = params.pop("client_id")
        params["scope"] = ",".join(self.scopes)
        return params

    def _grant(self, payload: Dict[str, Any]) -> TokenGrant:
        # Token endpoint answers either flat or wrapped in "data".
        data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        return TokenGrant(
            access_token=require_field(self.provider_name, data, "access_token"),
            refresh_token=data.get("refresh_token"),
            expires_at=self.expiry_from(data.get("expires_in")),
            scopes=[s for s in (data.get("scope") or "").split(",") if s],
            account_id=data.get("open_id"),
        )

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        *,
        code_verifier: Optional[str] = None,
    ) -> TokenGrant:
        data = {
            "client_key": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        }
        if code_verifier:
            data["code_verifier"] = code_verifier
        payload = await call_provider(
            self.provider_name,
            "POST",
            self.capabilities.token_endpoint,
            data=data,
            transport=self._transport,
        )
        raise_for_error_body(self.provider_name, payload)
        grant = self._grant(payload)

        info = await call_provider(
            self.provider_name,
            "GET",
            _TIKTOK_USERINFO_URL,
            params={"fields": "open_id,union_id,avatar_url,display_name"},
            headers={"Authorization": f"Bearer {grant.access_token}"},
            transport=self._transport,
        )
        raise_for_error_body(self.provider_name, info)
        user = (info.get("data") or {}).get("user") or {}

        return grant.model_copy(
            update={
                "account_id": user.get("open_id") or grant.account_id,
                "account_label": user.get("display_name"),
            }
        )

    async def refresh(self, refresh_token: str) -> TokenGrant:
        payload = await call_provider(
            self.provider_name,
            "POST",
            self.capabilities.token_endpoint,
            data={
                "client_key": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            transport=self._transport,
        )
        raise_for_error_body(self.provider_name, payload)
        return self._grant(payload)

    async def revoke(self, token: str) -> None:
        payload = await call_provider(
            self.provider_name,
            "POST",
            self.capabilities.revoke_endpoint,
            data={
                "client_key": self.client_id,
                "client_secret": self.client_secret,
                "token": token,
            },
            transport=self._transport,
        )
        raise_for_error_body(self.provider_name, payload)
