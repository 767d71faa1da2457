"""
Social connector service — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_middleware
from config.settings import config
from connectors.routes import router as connectors_router
from connectors.services import ConnectorServices, build_services
from connectors.store import SqlTokenStore

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "sqlalchemy.engine", "urllib3"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(services: Optional[ConnectorServices] = None) -> FastAPI:
    app = FastAPI(
        title="Social Connector Service",
        version="1.0.0",
        description="OAuth connection and token lifecycle manager.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)

    app.state.connectors = services or build_services()

    # Routes
    app.include_router(connectors_router, prefix="/api/v1/connectors")

    @app.on_event("startup")
    async def on_startup():
        wired: ConnectorServices = app.state.connectors

        logger.info("Discovering connectors…")
        wired.registry.discover()
        logger.info("Configured providers: %s", wired.registry.list_configured() or "none")

        if isinstance(wired.token_store, SqlTokenStore) and config.auto_create_schema:
            from database.session import create_schema

            await create_schema()

        # Drop OAuth states left over from previous server instances
        await wired.flow.cleanup_expired_states()

        logger.info("Application ready to accept requests.")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
