"""Health check endpoint.

GET /v1/health: reports Redis reachability.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Request

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Service health check.

    Returns "healthy" when the evidence store answers a ping and
    "unhealthy" otherwise.
    """
    redis_ok = False
    try:
        redis_ok = bool(await request.app.state.evidence_store.ping())
    except Exception:
        logger.warning("health_check_redis_failed")

    return {
        "status": "healthy" if redis_ok else "unhealthy",
        "redis": redis_ok,
        "version": "0.1.0",
    }
