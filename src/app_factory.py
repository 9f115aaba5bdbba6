"""
Lemdata Router - provider selection and dispatch service

Architecture:
- Selection Policy: budget/quota gates, then content heuristics
- Availability Probe: credential checks and local model health
- Fallback Coordinator: one hop to the flagship provider
- Usage Ledger: per-user daily cost and query accounting (Redis)
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from src.config.settings import Settings, configure_logging, get_cors_config, settings
from src.services.chat_service import ChatService

logger = logging.getLogger(__name__)

def create_app(config: Optional[Settings] = None, service: Optional[ChatService] = None) -> FastAPI:
    """Create and configure the router application."""

    config = config or settings
    configure_logging(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.chat_service = service or ChatService.from_settings(config)
        if not await app.state.chat_service.storage_ready():
            logger.warning("Redis unavailable at startup, usage ledger writes will fail until it recovers")
        logger.info(f"Lemdata Router ready on port {config.PORT}")
        try:
            yield
        finally:
            await app.state.chat_service.close()

    app = FastAPI(
        title=config.APP_NAME,
        description="Cost-aware routing of chat requests across generation providers",
        version=config.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    cors_config = get_cors_config(config)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_config["allow_origins"],
        allow_credentials=cors_config["allow_credentials"],
        allow_methods=cors_config["allow_methods"],
        allow_headers=cors_config["allow_headers"],
    )

    # Import routes (deferred to avoid circular imports)
    from src.api.routes import chat, stats

    app.include_router(chat.router)
    app.include_router(stats.router)

    @app.get("/")
    async def root():
        """Root endpoint - service information"""
        return {
            "service": config.APP_NAME,
            "version": config.APP_VERSION,
            "status": "operational",
            "endpoints": {
                "chat": "/api/chat",
                "providers": "/api/chat/providers",
                "usage": "/api/stats/usage/{user_id}",
                "telemetry": "/api/stats/llm/providers",
                "health": "/health",
                "docs": "/docs"
            }
        }

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {
            "status": "ok",
            "service": "lemdata-router",
            "version": config.APP_VERSION
        }

    return app

# Create app instance
app = create_app()
