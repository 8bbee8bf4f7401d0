"""Domain exceptions raised by the services layer.

Services never raise HTTPException.  Each error carries a short
machine-readable ``code`` and an optional ``meta`` dict; the API layer
(courseflow/api/errors.py) maps the class to an HTTP status and renders
all three fields.
"""

from __future__ import annotations

from typing import Any


class CourseflowError(Exception):
    """Base class for every expected, caller-visible failure."""

    default_code = "error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.meta = meta or {}
        super().__init__(message)


class ValidationError(CourseflowError):
    """Malformed input: duplicate order sets, bad attempt payloads."""

    default_code = "validation_error"


class NotFoundError(CourseflowError):
    """A referenced course, section, lesson, enrollment or attempt is missing."""

    default_code = "not_found"


class AuthorizationError(CourseflowError):
    """The actor may not perform this operation on this resource."""

    default_code = "forbidden"


class BusinessLogicError(CourseflowError):
    """The request is well-formed but a domain rule refuses it right now."""

    default_code = "business_rule"


class ConflictError(CourseflowError):
    """A concurrent writer won a uniqueness race.  Safe to retry once."""

    default_code = "conflict"
