"""Lookups and resource-level access checks shared by the services.

These are plain functions because they need both the Principal and a
loaded resource.  They raise domain errors, never HTTPException; the API
layer maps those to status codes.
"""

from __future__ import annotations

import datetime
import logging
from uuid import UUID

from courseflow.core.errors import AuthorizationError, NotFoundError
from courseflow.models.course import Course, Lesson, Section
from courseflow.models.principal import Principal
from courseflow.models.progress import Enrollment
from courseflow.repos.registry import Repos

logger = logging.getLogger(__name__)


def utc_now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


async def load_course(repos: Repos, course_id: UUID) -> Course:
    course = await repos.content.get_course(course_id)
    if course is None:
        raise NotFoundError("course not found", meta={"course_id": str(course_id)})
    return course


async def load_section(repos: Repos, section_id: UUID) -> Section:
    section = await repos.content.get_section(section_id)
    if section is None:
        raise NotFoundError("section not found", meta={"section_id": str(section_id)})
    return section


async def load_lesson(repos: Repos, lesson_id: UUID) -> Lesson:
    lesson = await repos.content.get_lesson(lesson_id)
    if lesson is None:
        raise NotFoundError("lesson not found", meta={"lesson_id": str(lesson_id)})
    return lesson


async def load_active_enrollment(
    repos: Repos, student_id: UUID, course_id: UUID
) -> Enrollment:
    enrollment = await repos.progress.get_enrollment(student_id, course_id)
    if enrollment is None or not enrollment.is_active:
        raise NotFoundError(
            "enrollment not found",
            meta={"student_id": str(student_id), "course_id": str(course_id)},
        )
    return enrollment


def check_owner_or_admin(actor: Principal, course: Course) -> None:
    """Raise unless the actor owns the course or is a platform admin."""
    if actor.owns(course.owner_id):
        return
    logger.warning(
        "Access denied: user=%s is not owner of course=%s", actor.user_id, course.id
    )
    raise AuthorizationError("only the course owner can do this")


def check_self_or_owner(actor: Principal, student_id: UUID, course: Course) -> None:
    """Raise unless the actor is the student, the course owner, or an admin."""
    if actor.user_id == student_id or actor.owns(course.owner_id):
        return
    logger.warning(
        "Access denied: user=%s reading progress of student=%s course=%s",
        actor.user_id,
        student_id,
        course.id,
    )
    raise AuthorizationError("you can only access your own progress")
