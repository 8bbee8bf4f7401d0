"""Per-student lesson progress from raw interaction events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from courseflow.core.errors import ValidationError
from courseflow.models.course import Course, Lesson, Section
from courseflow.models.principal import Principal
from courseflow.models.progress import Enrollment, LessonProgress
from courseflow.repos.registry import Repos
from courseflow.services import completion_gate
from courseflow.services.access import (
    check_self_or_owner,
    load_active_enrollment,
    load_course,
    load_lesson,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LessonProgressView:
    lesson_id: UUID
    is_completed: bool
    time_spent: int
    last_accessed: int | None
    percentage: int  # 0 or 100

    @staticmethod
    def of(lesson_id: UUID, record: LessonProgress | None) -> LessonProgressView:
        if record is None:
            return LessonProgressView(
                lesson_id=lesson_id,
                is_completed=False,
                time_spent=0,
                last_accessed=None,
                percentage=0,
            )
        return LessonProgressView(
            lesson_id=lesson_id,
            is_completed=record.is_completed,
            time_spent=record.time_spent_seconds,
            last_accessed=record.last_accessed_at,
            percentage=100 if record.is_completed else 0,
        )


@dataclass(frozen=True, slots=True)
class InteractionResult:
    lesson: LessonProgressView
    progress: int
    is_completed: bool
    certificate_issued: bool


@dataclass(frozen=True, slots=True)
class SectionProgress:
    section: Section
    lessons: list[tuple[Lesson, LessonProgressView]]


@dataclass(frozen=True, slots=True)
class CourseProgress:
    course: Course
    enrollment: Enrollment
    completed_lessons: int
    sections: list[SectionProgress]


async def record_interaction(
    repos: Repos,
    actor: Principal,
    student_id: UUID,
    lesson_id: UUID,
    *,
    completed: bool | None = None,
    seconds_delta: int | None = None,
) -> InteractionResult:
    """Upsert the (student, lesson) record from one event.

    ``completed=True`` is sticky and a later ``completed=False`` changes
    nothing.  ``seconds_delta`` is clamped to >= 0 and added atomically.
    A completion event triggers a course-level recompute.
    """
    if completed is None and seconds_delta is None:
        raise ValidationError("interaction needs completed or seconds_delta")

    lesson = await load_lesson(repos, lesson_id)
    course = await load_course(repos, lesson.course_id)
    check_self_or_owner(actor, student_id, course)
    enrollment = await load_active_enrollment(repos, student_id, course.id)

    seconds = max(0, seconds_delta or 0)
    now = utc_now()
    record = await repos.progress.upsert_lesson_progress(
        student_id, lesson, completed=bool(completed), seconds=seconds, now=now
    )
    await repos.progress.touch_enrollment(enrollment.id, seconds, now)
    logger.debug(
        "Interaction recorded  student_id=%s lesson_id=%s completed=%s seconds=%d",
        student_id,
        lesson_id,
        record.is_completed,
        seconds,
    )

    if completed:
        enrollment = await completion_gate.recompute(repos, student_id, course.id)

    return InteractionResult(
        lesson=LessonProgressView.of(lesson_id, record),
        progress=enrollment.progress,
        is_completed=enrollment.is_completed,
        certificate_issued=enrollment.certificate_issued,
    )


async def get_progress(
    repos: Repos, actor: Principal, lesson_id: UUID, student_id: UUID
) -> LessonProgressView:
    lesson = await load_lesson(repos, lesson_id)
    course = await load_course(repos, lesson.course_id)
    check_self_or_owner(actor, student_id, course)
    await load_active_enrollment(repos, student_id, course.id)

    record = await repos.progress.get_lesson_progress(student_id, lesson_id)
    return LessonProgressView.of(lesson_id, record)


async def get_course_progress(
    repos: Repos, actor: Principal, course_id: UUID, student_id: UUID
) -> CourseProgress:
    """Enrollment summary plus every visible lesson with its progress."""
    course = await load_course(repos, course_id)
    check_self_or_owner(actor, student_id, course)
    enrollment = await load_active_enrollment(repos, student_id, course_id)

    records = {
        lp.lesson_id: lp
        for lp in await repos.progress.list_lesson_progress(student_id, course_id)
    }
    sections = []
    for section in await repos.content.list_sections(course_id):
        if not section.is_visible:
            continue
        lessons = [
            (lesson, LessonProgressView.of(lesson.id, records.get(lesson.id)))
            for lesson in await repos.content.list_lessons(section.id)
            if lesson.is_visible
        ]
        sections.append(SectionProgress(section=section, lessons=lessons))

    return CourseProgress(
        course=course,
        enrollment=enrollment,
        completed_lessons=sum(1 for r in records.values() if r.is_completed),
        sections=sections,
    )
