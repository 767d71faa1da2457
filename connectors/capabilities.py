"""
Provider capability registry — static metadata per OAuth provider.

Pure lookup: nothing here touches the network or mutates.  Whether a
provider can refresh tokens is decided here, once, and checked before any
refresh is attempted.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Dict, List

from connectors.errors import UnknownProvider
from connectors.schemas import ProviderCapabilities

# ── All known providers — add new ones here ──────────────────────────────

PROVIDER_CAPABILITIES: Dict[str, ProviderCapabilities] = {
    "youtube": ProviderCapabilities(
        provider="youtube",
        display_name="YouTube",
        supports_refresh=True,
        access_token_ttl_hint=timedelta(hours=1),
        authorize_endpoint="https://accounts.google.com/o/oauth2/v2/auth",
        token_endpoint="https://oauth2.googleapis.com/token",
        revoke_endpoint="https://oauth2.googleapis.com/revoke",
        required_scopes=[
            "https://www.googleapis.com/auth/youtube.upload",
            "https://www.googleapis.com/auth/youtube.readonly",
            "https://www.googleapis.com/auth/userinfo.profile",
        ],
    ),
    "linkedin": ProviderCapabilities(
        provider="linkedin",
        display_name="LinkedIn",
        # Standard LinkedIn apps never receive a refresh token.
        supports_refresh=False,
        access_token_ttl_hint=timedelta(days=60),
        authorize_endpoint="https://www.linkedin.com/oauth/v2/authorization",
        token_endpoint="https://www.linkedin.com/oauth/v2/accessToken",
        required_scopes=["openid", "profile", "email", "w_member_social"],
        uses_pkce=True,
    ),
    "tiktok": ProviderCapabilities(
        provider="tiktok",
        display_name="TikTok",
        supports_refresh=True,
        access_token_ttl_hint=timedelta(hours=24),
        authorize_endpoint="https://www.tiktok.com/v2/auth/authorize/",
        token_endpoint="https://open.tiktokapis.com/v2/oauth/token/",
        revoke_endpoint="https://open.tiktokapis.com/v2/oauth/revoke/",
        required_scopes=["user.info.basic", "video.list", "video.upload"],
        uses_pkce=True,
    ),
    "twitter": ProviderCapabilities(
        provider="twitter",
        display_name="X (Twitter)",
        supports_refresh=True,
        access_token_ttl_hint=timedelta(hours=2),
        authorize_endpoint="https://twitter.com/i/oauth2/authorize",
        token_endpoint="https://api.twitter.com/2/oauth2/token",
        revoke_endpoint="https://api.twitter.com/2/oauth2/revoke",
        required_scopes=["tweet.read", "tweet.write", "users.read", "offline.access"],
        uses_pkce=True,
    ),
    "facebook": ProviderCapabilities(
        provider="facebook",
        display_name="Facebook",
        # No refresh token; a still-valid long-lived token is swapped for a new one.
        supports_refresh=True,
        refresh_with_access_token=True,
        access_token_ttl_hint=timedelta(days=60),
        authorize_endpoint="https://www.facebook.com/v18.0/dialog/oauth",
        token_endpoint="https://graph.facebook.com/v18.0/oauth/access_token",
        required_scopes=[
            "pages_show_list",
            "pages_read_engagement",
            "pages_manage_posts",
            "pages_read_user_content",
            "public_profile",
        ],
    ),
    "instagram": ProviderCapabilities(
        provider="instagram",
        display_name="Instagram",
        supports_refresh=True,
        refresh_with_access_token=True,
        access_token_ttl_hint=timedelta(days=60),
        authorize_endpoint="https://www.instagram.com/oauth/authorize",
        token_endpoint="https://api.instagram.com/oauth/access_token",
        required_scopes=[
            "instagram_business_basic",
            "instagram_business_content_publish",
            "instagram_business_manage_messages",
            "instagram_business_manage_comments",
            "instagram_business_manage_insights",
        ],
    ),
    "pinterest": ProviderCapabilities(
        provider="pinterest",
        display_name="Pinterest",
        supports_refresh=True,
        access_token_ttl_hint=timedelta(days=30),
        authorize_endpoint="https://www.pinterest.com/oauth/",
        token_endpoint="https://api.pinterest.com/v5/oauth/token",
        required_scopes=[
            "user_accounts:read",
            "boards:read",
            "boards:write",
            "pins:read",
            "pins:write",
        ],
    ),
}


def capabilities_for(provider: str) -> ProviderCapabilities:
    """Return the capabilities of ``provider`` or raise ``UnknownProvider``."""
    try:
        return PROVIDER_CAPABILITIES[provider]
    except KeyError:
        raise UnknownProvider(
            f"Unknown provider '{provider}'. Available: {sorted(PROVIDER_CAPABILITIES)}",
            provider=provider,
        ) from None


def list_capabilities() -> List[ProviderCapabilities]:
    return list(PROVIDER_CAPABILITIES.values())
