"""FastAPI application factory.

Creates and configures the evidence query API with lifespan management
for the Redis connection.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from evidence_pipeline.adapters.redis.store import RedisEntityRegistry, RedisEvidenceStore
from evidence_pipeline.api.middleware import register_middleware
from evidence_pipeline.api.routes.evidence import router as evidence_router
from evidence_pipeline.api.routes.health import router as health_router
from evidence_pipeline.domain.filters import FilterCompiler
from evidence_pipeline.settings import Settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage the Redis connection across the app lifecycle."""
    settings = Settings()

    # -- Startup: create store, registry and compiler ----------------------
    evidence_store = RedisEvidenceStore.create(settings.redis)
    await evidence_store.ensure_indexes()
    registry = RedisEntityRegistry(evidence_store.client, settings.redis)

    app.state.settings = settings
    app.state.evidence_store = evidence_store
    app.state.registry = registry
    app.state.compiler = FilterCompiler(
        registry,
        default_window=settings.filter.default_window or None,
        structural_prefixes=settings.filter.structural_prefixes,
    )

    logger.info("app_started", redis_host=settings.redis.host, index=settings.redis.evidence_index)

    yield

    # -- Shutdown: release connection --------------------------------------
    await evidence_store.close()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    """Build and return the configured FastAPI application."""
    app = FastAPI(
        title="Evidence Pipeline API",
        description="Evidence criteria compilation and per-scope aggregates",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    register_middleware(app)

    app.include_router(evidence_router, prefix="/v1")
    app.include_router(health_router, prefix="/v1")

    return app
