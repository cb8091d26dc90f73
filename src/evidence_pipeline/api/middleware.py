"""API middleware: request context and error mapping.

Every request gets an id, bound into structlog's context variables so the
compiler, histogram and store log lines of one request can be correlated.
The id is echoed in ``X-Request-ID`` and in 500 bodies.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from evidence_pipeline.domain.errors import MalformedCriteria
from evidence_pipeline.domain.models import CompileStatus

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def _malformed_criteria_handler(request: Request, exc: MalformedCriteria) -> ORJSONResponse:
    """Criteria that cannot be parsed are the caller's fault: 422."""
    logger.info("malformed_criteria", reason=exc.reason, path=request.url.path)
    return ORJSONResponse(
        status_code=422,
        content={
            "status": CompileStatus.PARSE_ERROR,
            "detail": [{"field": "filter", "message": exc.reason}],
        },
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    # Registry and store failures land here; the id ties the reply to the log line
    request_id = _request_id(request)
    logger.error("request_failed", path=request.url.path, exc_info=exc)
    return ORJSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "request_id": request_id},
        headers={REQUEST_ID_HEADER: request_id} if request_id else None,
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a per-request id into the structlog context and logs completion."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.monotonic()
        response: Response = await call_next(request)
        elapsed_ms = round((time.monotonic() - start) * 1000, 1)

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.debug(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        return response


def register_middleware(app: FastAPI) -> None:
    """Attach the request context middleware and exception handlers."""
    app.add_exception_handler(MalformedCriteria, _malformed_criteria_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)
    app.add_middleware(RequestContextMiddleware)
