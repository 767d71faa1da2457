"""
BaseConnector — abstract interface for all OAuth2 provider adapters.

Capabilities are expressed as classes rather than optional methods:

  • BaseConnector        authorize + exchange (every provider)
  • RefreshableConnector adds ``refresh``    (providers issuing refresh tokens)
  • RevocableConnector   adds ``revoke``     (providers with a revoke endpoint)

An adapter for a provider without refresh support simply does not have a
``refresh`` method, so nothing can call it by accident.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from config.settings import config
from connectors.capabilities import capabilities_for
from connectors.errors import RefreshUnsupported
from connectors.schemas import ProviderCapabilities, TokenGrant, utcnow

logger = logging.getLogger(__name__)


class BaseConnector(ABC):
    """Abstract base for all OAuth2 connectors."""

    def __init__(self, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        # Tests inject an ``httpx.MockTransport`` here.
        self._transport = transport

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique slug such as 'youtube' or 'pinterest'."""
        ...

    @property
    def capabilities(self) -> ProviderCapabilities:
        return capabilities_for(self.provider_name)

    @property
    def display_name(self) -> str:
        return self.capabilities.display_name

    @property
    def scopes(self) -> List[str]:
        return list(self.capabilities.required_scopes)

    @property
    def client_id(self) -> str:
        return config.provider_credentials(self.provider_name)[0]

    @property
    def client_secret(self) -> str:
        return config.provider_credentials(self.provider_name)[1]

    def is_configured(self) -> bool:
        """True when client credentials are present in the settings."""
        return bool(self.client_id and self.client_secret)

    # ── OAuth flow ──────────────────────────────────────────────────────

    def authorization_params(
        self,
        state: str,
        redirect_uri: str,
        code_challenge: Optional[str] = None,
    ) -> Dict[str, str]:
        """Standard authorization-code parameters; subclasses extend them."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
        }
        if code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"
        return params

    def build_authorization_url(
        self,
        state: str,
        redirect_uri: str,
        *,
        code_challenge: Optional[str] = None,
    ) -> str:
        """
        Build the provider's OAuth2 authorization URL.

        Parameters
        ----------
        state : str
            Signed state token; comes back untouched on the callback.
        redirect_uri : str
            Callback URL registered with the provider.
        code_challenge : str, optional
            PKCE S256 challenge for providers that use PKCE.
        """
        params = self.authorization_params(state, redirect_uri, code_challenge)
        return f"{self.capabilities.authorize_endpoint}?{urlencode(params)}"

    @abstractmethod
    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        *,
        code_verifier: Optional[str] = None,
    ) -> TokenGrant:
        """
        Exchange the authorization code for tokens.

        Raises ``ProviderRejected`` when the provider refuses the code and
        ``ProviderUnavailable`` on network / server trouble.
        """
        ...

    # ── Helpers ─────────────────────────────────────────────────────────

    def expiry_from(self, expires_in: Any) -> Optional[datetime]:
        """
        Turn ``expires_in`` seconds into an absolute UTC time, falling back to
        the capability TTL hint when the provider omitted it.
        """
        if expires_in:
            return utcnow() + timedelta(seconds=int(expires_in))
        hint = self.capabilities.access_token_ttl_hint
        if hint is not None:
            return utcnow() + hint
        return None


class RefreshableConnector(BaseConnector):
    """Connector for a provider that issues refresh tokens."""

    @abstractmethod
    async def refresh(self, refresh_token: str) -> TokenGrant:
        """
        Exchange a refresh token for a new access token.

        The returned grant carries ``refresh_token=None`` when the provider
        did not rotate it.
        """
        ...


class RevocableConnector(ABC):
    """Mixin for connectors with a token revocation endpoint."""

    @abstractmethod
    async def revoke(self, token: str) -> None:
        """Revoke ``token`` at the provider.  Raises the adapter error kinds."""
        ...


def require_refresh(connector: BaseConnector) -> RefreshableConnector:
    """
    Return ``connector`` as a refreshable one, or fail before any network
    call with ``RefreshUnsupported``.
    """
    if not isinstance(connector, RefreshableConnector):
        raise RefreshUnsupported(
            f"{connector.display_name} does not support token refresh. User must re-authenticate.",
            provider=connector.provider_name,
        )
    return connector
