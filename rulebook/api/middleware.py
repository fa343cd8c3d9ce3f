"""Request tracing middleware."""

import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from rulebook.logging_config import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log its outcome and latency.

    A caller-supplied ``X-Request-ID`` is reused so traces can be followed
    across services. The id is bound into structlog contextvars for every log
    line emitted while the request is handled.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex[:12]
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error", method=request.method, path=request.url.path)
            raise
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            structlog.contextvars.unbind_contextvars("request_id")

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            f"{request.method} {request.url.path}",
            request_id=request_id,
            status_code=response.status_code,
            duration_ms=round(elapsed_ms, 1),
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.1f}ms"
        return response
