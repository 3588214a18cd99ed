#!/usr/bin/env python3
"""
Powerslides relay - presentation state and remote-control relay
Main FastAPI application
"""
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from powerslides.config import settings
from powerslides.core.logger import setup_logger
from powerslides.api.v1.health import router as health_router
from powerslides.api.websocket import router as relay_router
from powerslides.services.room_registry import RoomRegistry

# Logger
logger = setup_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown banners"""
    logger.info("=" * 50)
    logger.info(f"🚀 {settings.SERVICE_NAME} starting")
    logger.info(f"📍 port: {settings.PORT}")
    logger.info("🔌 relay: WebSocket at / and /ws")
    logger.info("=" * 50)
    yield
    logger.info(f"🛑 {settings.SERVICE_NAME} stopping ({app.state.registry.room_count} open rooms dropped)")


def create_app(registry: Optional[RoomRegistry] = None) -> FastAPI:
    """Build the app around one explicitly owned room registry"""
    app = FastAPI(
        title=settings.SERVICE_NAME,
        description=settings.DESCRIPTION,
        version=settings.VERSION,
        lifespan=lifespan
    )
    app.state.registry = registry if registry is not None else RoomRegistry()

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(health_router)
    app.include_router(relay_router)

    return app


app = create_app()


if __name__ == "__main__":
    # Development mode
    uvicorn.run(
        "powerslides.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info"
    )
