#!/usr/bin/env python3
"""
TradeDesk Realtime - Main Application
FastAPI application factory serving the push-update hub
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from tradedesk.api import health_router, ws_router
from tradedesk.core.config import Settings, settings
from tradedesk.core.logging import get_logger, setup_logging
from tradedesk.core.middleware import setup_middleware
from tradedesk.realtime.hub import PushHub

logger = get_logger(__name__)


def create_app(hub: Optional[PushHub] = None, config: Optional[Settings] = None) -> FastAPI:
    """Create FastAPI application; the app owns the hub lifecycle"""
    config = config or settings
    hub = hub or PushHub(
        market_data_interval=config.MARKET_DATA_INTERVAL,
        portfolio_update_interval=config.PORTFOLIO_UPDATE_INTERVAL
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(config)
        logger.info(f"🚀 {config.APP_NAME} starting up...")
        logger.info(f"Debug mode: {config.DEBUG}")

        await hub.start()

        yield

        logger.info(f"⏹️  {config.APP_NAME} shutting down...")
        try:
            await hub.stop()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")

    app = FastAPI(
        title=config.APP_NAME,
        description="Push-update hub for the trading dashboard",
        version=config.APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if config.DEBUG else None,
        redoc_url="/redoc" if config.DEBUG else None
    )
    app.state.hub = hub

    setup_middleware(app)
    app.include_router(health_router)
    app.include_router(ws_router)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tradedesk.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
