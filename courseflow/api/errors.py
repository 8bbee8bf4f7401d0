"""Maps domain exceptions from courseflow/core/errors.py to HTTP responses.

Every handled error renders as ``{"detail", "code", "meta"}``.  Anything
else propagates as a 500 and the request's session rolls back.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from courseflow.core.errors import (
    AuthorizationError,
    BusinessLogicError,
    ConflictError,
    CourseflowError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[CourseflowError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_CONTENT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    BusinessLogicError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_409_CONFLICT,
}


def status_for(exc: CourseflowError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return status.HTTP_400_BAD_REQUEST


async def handle_courseflow_error(request: Request, exc: CourseflowError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info(
        "Request refused  path=%s status=%d code=%s",
        request.url.path,
        status_code,
        exc.code,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code, "meta": exc.meta},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CourseflowError, handle_courseflow_error)  # type: ignore[arg-type]
