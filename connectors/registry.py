"""
ConnectorRegistry — discovers and provides access to all provider adapters.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from connectors.base import BaseConnector, RefreshableConnector, RevocableConnector
from connectors.capabilities import capabilities_for
from connectors.errors import ProviderNotConfigured
from connectors.facebook import FacebookConnector
from connectors.instagram import InstagramConnector
from connectors.linkedin import LinkedInConnector
from connectors.pinterest import PinterestConnector
from connectors.tiktok import TikTokConnector
from connectors.twitter import TwitterConnector
from connectors.youtube import YouTubeConnector

logger = logging.getLogger(__name__)


def _all_connectors() -> List[BaseConnector]:
    # ── All known connectors — add new ones here ─────────────────────────
    return [
        YouTubeConnector(),
        LinkedInConnector(),
        TikTokConnector(),
        TwitterConnector(),
        FacebookConnector(),
        InstagramConnector(),
        PinterestConnector(),
    ]


class ConnectorRegistry:
    """Singleton registry for all OAuth connectors."""

    _instance: Optional["ConnectorRegistry"] = None

    def __new__(cls) -> "ConnectorRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._connectors = {}
            cls._instance._discovered = False
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (tests)."""
        cls._instance = None

    def register(self, connector: BaseConnector) -> None:
        """
        Register ``connector`` after checking it against the capability
        registry: a provider declared without refresh must not ship a
        refreshable adapter, and vice versa.
        """
        caps = capabilities_for(connector.provider_name)
        if caps.supports_refresh != isinstance(connector, RefreshableConnector):
            raise TypeError(
                f"{type(connector).__name__} does not match declared refresh "
                f"support ({caps.supports_refresh}) for '{caps.provider}'"
            )
        self._connectors[connector.provider_name] = connector

    def discover(self) -> None:
        """Register all configured connectors."""
        if self._discovered:
            return
        for conn in _all_connectors():
            if conn.is_configured():
                self.register(conn)
                logger.info(
                    "Connector registered: %s (%s)",
                    conn.display_name,
                    conn.provider_name,
                )
            else:
                logger.warning(
                    "Connector %s skipped — not configured (missing client_id/secret)",
                    conn.provider_name,
                )
        self._discovered = True

    def get(self, provider: str) -> Optional[BaseConnector]:
        """Get a connector by provider name."""
        return self._connectors.get(provider)

    def require(self, provider: str) -> BaseConnector:
        """
        Return the connector for ``provider``.

        Raises ``UnknownProvider`` for names missing from the capability
        registry and ``ProviderNotConfigured`` for known providers whose
        credentials are not set.
        """
        capabilities_for(provider)
        connector = self._connectors.get(provider)
        if connector is None:
            raise ProviderNotConfigured(
                f"Provider '{provider}' not configured. Set its client id and secret.",
                provider=provider,
            )
        return connector

    def list_providers(self) -> List[Dict[str, Any]]:
        """Return info about all known providers for the UI."""
        result = []
        for conn in _all_connectors():
            caps = conn.capabilities
            registered = self._connectors.get(caps.provider)
            result.append(
                {
                    "provider": caps.provider,
                    "display_name": caps.display_name,
                    "configured": registered is not None,
                    "supports_refresh": caps.supports_refresh,
                    "supports_revoke": isinstance(registered or conn, RevocableConnector),
                    "scopes": list(caps.required_scopes),
                }
            )
        return result

    def list_configured(self) -> List[str]:
        """Return names of configured connectors."""
        return list(self._connectors.keys())
