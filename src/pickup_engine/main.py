"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import health, pickups
from .config import settings
from .services.resolver import PickupResolver, create_resolver

logger = logging.getLogger(__name__)


def create_app(resolver_factory: Optional[Callable[[], PickupResolver]] = None) -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    factory = resolver_factory or create_resolver

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        resolver = factory()
        metadata = resolver.rebuild_index()
        logger.info(
            f"Pickup index ready: {metadata.total_products} products, "
            f"{metadata.products_with_pickup_data} with pickup data"
        )
        app.state.resolver = resolver
        try:
            yield
        finally:
            app.state.resolver = None
            await resolver.aclose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(pickups.router, prefix=settings.api_prefix)
    return app


app = create_app()
