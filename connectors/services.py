"""
Wiring for the connection manager.

``build_services`` assembles the registry, stores, flow orchestrator and
token manager for the configured storage backend.  The FastAPI app keeps
the result on ``app.state.connectors``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import config
from connectors.flow import FlowOrchestrator
from connectors.registry import ConnectorRegistry
from connectors.state import InMemoryStateStore, SqlStateStore, StateStore
from connectors.store import InMemoryTokenStore, SqlTokenStore, TokenStore
from connectors.token_manager import TokenManager

logger = logging.getLogger(__name__)


@dataclass
class ConnectorServices:
    registry: ConnectorRegistry
    token_store: TokenStore
    state_store: StateStore
    flow: FlowOrchestrator
    token_manager: TokenManager


def build_services(
    *,
    backend: Optional[str] = None,
    registry: Optional[ConnectorRegistry] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> ConnectorServices:
    """
    Build the service graph.

    ``backend`` is ``"sql"`` or ``"memory"`` and defaults to
    ``config.connection_store_backend``.
    """
    backend = backend or config.connection_store_backend
    registry = registry or ConnectorRegistry()

    if backend == "memory":
        token_store: TokenStore = InMemoryTokenStore()
        state_store: StateStore = InMemoryStateStore()
    elif backend == "sql":
        if session_factory is None:
            from database.session import async_session_factory

            session_factory = async_session_factory
        token_store = SqlTokenStore(session_factory)
        state_store = SqlStateStore(session_factory)
    else:
        raise ValueError(f"Unknown connection store backend: {backend!r}")

    logger.info("Connection store backend: %s", backend)
    return ConnectorServices(
        registry=registry,
        token_store=token_store,
        state_store=state_store,
        flow=FlowOrchestrator(registry, token_store, state_store),
        token_manager=TokenManager(token_store, registry),
    )
