"""The slice of course CRUD the engine needs: create, read, enroll."""

from __future__ import annotations

import logging
import re
from uuid import UUID

from courseflow.core.errors import AuthorizationError, ConflictError, ValidationError
from courseflow.models.course import Course
from courseflow.models.principal import Principal
from courseflow.models.progress import Enrollment
from courseflow.repos.registry import Repos
from courseflow.services.access import load_course, utc_now

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


async def create_course(
    repos: Repos,
    actor: Principal,
    *,
    slug: str,
    title: str,
    certificate: bool = False,
    status: str = "draft",
) -> Course:
    if not actor.has_any_role({"instructor", "admin"}):
        raise AuthorizationError("only instructors can create courses")
    slug = slug.strip().lower()
    if not _SLUG_RE.match(slug):
        raise ValidationError("slug must be lowercase words joined by hyphens")
    if not title.strip():
        raise ValidationError("title is required")

    course = Course.new(
        slug=slug,
        title=title.strip(),
        owner_id=actor.user_id,
        certificate=certificate,
        status=status,
    )
    try:
        await repos.content.add_course(course)
    except ValueError:
        raise ConflictError("a course with this slug already exists") from None
    logger.info("Course created  course_id=%s slug=%s", course.id, slug)
    return course


async def get_course(repos: Repos, course_id: UUID) -> Course:
    return await load_course(repos, course_id)


async def enroll(repos: Repos, actor: Principal, course_id: UUID) -> Enrollment:
    course = await load_course(repos, course_id)
    if await repos.progress.get_enrollment(actor.user_id, course.id) is not None:
        raise ConflictError("already enrolled")

    enrollment = Enrollment.new(
        student_id=actor.user_id,
        course_id=course.id,
        student_name=actor.name,
        enrolled_at=utc_now(),
    )
    try:
        await repos.progress.add_enrollment(enrollment)
    except ValueError:
        raise ConflictError("already enrolled") from None
    logger.info("Enrolled  student_id=%s course_id=%s", actor.user_id, course.id)
    return enrollment
