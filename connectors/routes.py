"""
Connector API routes — OAuth connect/callback, refresh, list connections, disconnect.

Route prefix: /api/v1/connectors

Every domain error propagates as a ``ConnectorError`` and is rendered as
``{"error", "signal", "message"}`` by the handler in ``api.middleware``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request

from auth.dependencies import get_current_user_id
from connectors.errors import InvalidState
from connectors.services import ConnectorServices

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connectors"])


def get_services(request: Request) -> ConnectorServices:
    """The service graph built in ``main.create_app``."""
    return request.app.state.connectors


# ── Routes ─────────────────────────────────────────────────────────────


@router.get("/providers")
async def list_providers(
    services: ConnectorServices = Depends(get_services),
) -> List[Dict[str, Any]]:
    """
    List all known providers and their configuration status.
    No auth required — used by the frontend to show available connectors.
    """
    return services.registry.list_providers()


@router.get("/connections")
async def list_connections(
    user_id: str = Depends(get_current_user_id),
    services: ConnectorServices = Depends(get_services),
) -> List[Dict[str, Any]]:
    """List all OAuth connections for the authenticated user."""
    return await services.token_manager.list_connections(user_id)


@router.get("/{provider}/auth-url")
async def get_auth_url(
    provider: str,
    user_id: str = Depends(get_current_user_id),
    services: ConnectorServices = Depends(get_services),
) -> Dict[str, str]:
    """
    Get the OAuth authorization URL for a provider.

    Frontend should open this URL in a popup window.
    """
    auth_url = await services.flow.initiate(user_id, provider)
    return {"auth_url": auth_url, "provider": provider}


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    state: Optional[str] = Query(None),
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    services: ConnectorServices = Depends(get_services),
) -> Dict[str, Any]:
    """
    OAuth callback — the provider redirects here after consent.

    The user is identified by the state token, not by a bearer header.
    """
    if not state:
        raise InvalidState("Missing OAuth state", provider=provider)
    record = await services.flow.handle_callback(
        state,
        code=code,
        error=error,
        error_description=error_description,
        provider=provider,
    )
    return {"status": "connected", "connection": record.summary()}


@router.post("/{provider}/refresh")
async def refresh_token(
    provider: str,
    user_id: str = Depends(get_current_user_id),
    services: ConnectorServices = Depends(get_services),
) -> Dict[str, Any]:
    """
    Make sure the stored token is usable, refreshing it if needed.
    The token itself is never returned.
    """
    await services.token_manager.ensure_valid_token(user_id, provider)
    record = await services.token_manager.get_connection(user_id, provider)
    return {
        "status": record.status.value,
        "expires_at": record.expires_at.isoformat() if record.expires_at else None,
        "version": record.version,
    }


@router.delete("/{provider}")
async def delete_connection(
    provider: str,
    user_id: str = Depends(get_current_user_id),
    services: ConnectorServices = Depends(get_services),
) -> Dict[str, Any]:
    """Disconnect and revoke an OAuth connection."""
    record = await services.token_manager.disconnect(user_id, provider)
    return {"status": record.status.value, "provider": provider, "version": record.version}
