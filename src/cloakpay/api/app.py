"""FastAPI application configuration."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CollectorRegistry, make_asgi_app, multiprocess

from ..env import get_settings
from .dependencies import Container
from .routers import callbacks, payment_intents, payroll, webhooks

logger = logging.getLogger(__name__)


def _metrics_app():
    """ASGI app exposing Prometheus metrics, aggregated across workers if needed."""
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return make_asgi_app(registry=registry)
    return make_asgi_app()


def create_app(
    container: Optional[Container] = None,
    cors_origins: Optional[list[str]] = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    When no container is given, one is built from the environment at startup
    and torn down at shutdown. An injected container is left to its owner.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = container is None
        active = container or Container.from_settings(get_settings())
        app.state.container = active
        await active.startup()
        logger.info("%s v%s started", active.app_name, active.app_version)
        try:
            yield
        finally:
            if owned:
                await active.shutdown()

    app = FastAPI(
        title="CloakPay",
        description="Confidential payment settlement API",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(payment_intents.router, prefix="/api/v1")
    app.include_router(payroll.router, prefix="/api/v1")
    app.include_router(webhooks.router, prefix="/api/v1")
    app.include_router(callbacks.router, prefix="/api/v1")

    app.mount("/metrics", _metrics_app())

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        active: Container = app.state.container
        return {
            "message": f"Welcome to {active.app_name} API",
            "version": active.app_version,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        active: Container = app.state.container
        return {
            "status": "healthy",
            "service": active.app_name,
            "version": active.app_version,
        }

    return app


app = create_app(cors_origins=os.environ.get("API_CORS_ORIGINS", "*").split(","))
