"""Request ID middleware and log correlation for DeployHub.

Generates a UUID4 per request, stores it in a ContextVar so it can be
retrieved anywhere in the request lifecycle (services, repositories, the
cluster client), and attaches it as a X-Request-ID response header.
RequestIDLogFilter copies the same value onto every log record.
"""

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

log = logging.getLogger(__name__)


def get_request_id() -> str:
    return request_id_var.get()


class RequestIDLogFilter(logging.Filter):
    """Adds a ``request_id`` attribute to every record ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Sets the request ID ContextVar, logs the request outcome and adds the
    X-Request-ID header to every response."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        req_id = str(uuid.uuid4())
        request_id_var.set(req_id)
        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = req_id
        log.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response
