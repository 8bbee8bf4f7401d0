"""Request context middleware, assigns a request ID to every request.

The ID lives in a ContextVar (safe across concurrent async tasks on one
thread) and the LogRecord factory copies it onto every record, so log
lines from the services carry the ID of the request that produced them.
The same ID is returned in ``X-Request-ID``.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

# Client-supplied IDs are echoed into logs; keep them short and plain.
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


_base_factory = logging.getLogRecordFactory()


def _record_factory(*args, **kwargs) -> logging.LogRecord:
    """Adds ``request_id`` to every LogRecord from the current context."""
    record = _base_factory(*args, **kwargs)
    record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
    return record


# Logger filters do not see records propagated from child loggers, so the
# ID is attached where records are built.  Installed once, even across
# module reloads.
if not getattr(_base_factory, "_courseflow_request_id", False):
    _record_factory._courseflow_request_id = True  # type: ignore[attr-defined]
    logging.setLogRecordFactory(_record_factory)


def _incoming_request_id(request: Request) -> str:
    supplied = request.headers.get("x-request-id", "")
    if _VALID_REQUEST_ID.match(supplied):
        return supplied
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns the request ID, times the request and logs one summary line."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = _incoming_request_id(request)
        token = request_id_var.set(req_id)
        start = time.monotonic()
        try:
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)
            logger.info(
                "%s %s -> %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = req_id
        return response
