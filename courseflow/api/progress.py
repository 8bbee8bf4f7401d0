"""Learner interaction events and progress read endpoints.

  Client -> POST /v1/lessons/{lesson_id}/progress {completed, time_spent_delta}
  -> upsert lesson_progress (completion sticky, time additive)
  -> on completion: recompute enrollment progress, maybe issue certificate
  -> 200 with the lesson record and the course-level state

Students act on their own records.  The course owner (or an admin) may
pass ``student_id`` to read or correct a student's progress.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel, Field

from courseflow.api.content_schemas import LessonOut, SectionOut
from courseflow.api.courses import EnrollmentOut
from courseflow.api.dependencies import CurrentUser, RequestRepos
from courseflow.services import progress_tracker
from courseflow.services.progress_tracker import LessonProgressView

router = APIRouter(prefix="/v1", tags=["progress"])


class InteractionIn(BaseModel):
    completed: bool | None = None
    time_spent_delta: int | None = Field(default=None, description="seconds")
    student_id: UUID | None = None


class LessonProgressOut(BaseModel):
    lesson_id: str
    is_completed: bool
    time_spent: int
    last_accessed: int | None
    percentage: int

    @staticmethod
    def of(view: LessonProgressView) -> LessonProgressOut:
        return LessonProgressOut(
            lesson_id=str(view.lesson_id),
            is_completed=view.is_completed,
            time_spent=view.time_spent,
            last_accessed=view.last_accessed,
            percentage=view.percentage,
        )


class InteractionOut(BaseModel):
    lesson: LessonProgressOut
    course_progress: int
    course_completed: bool
    certificate_issued: bool


class LessonWithProgressOut(BaseModel):
    lesson: LessonOut
    progress: LessonProgressOut


class SectionWithProgressOut(BaseModel):
    section: SectionOut
    lessons: list[LessonWithProgressOut]


class CourseProgressOut(BaseModel):
    course_id: str
    total_lessons: int
    completed_lessons: int
    enrollment: EnrollmentOut
    sections: list[SectionWithProgressOut]


@router.post("/lessons/{lesson_id}/progress", response_model=InteractionOut)
async def record_interaction(
    lesson_id: UUID, payload: InteractionIn, principal: CurrentUser, repos: RequestRepos
) -> InteractionOut:
    result = await progress_tracker.record_interaction(
        repos,
        principal,
        payload.student_id or principal.user_id,
        lesson_id,
        completed=payload.completed,
        seconds_delta=payload.time_spent_delta,
    )
    return InteractionOut(
        lesson=LessonProgressOut.of(result.lesson),
        course_progress=result.progress,
        course_completed=result.is_completed,
        certificate_issued=result.certificate_issued,
    )


@router.get("/lessons/{lesson_id}/progress", response_model=LessonProgressOut)
async def get_lesson_progress(
    lesson_id: UUID,
    principal: CurrentUser,
    repos: RequestRepos,
    student_id: UUID | None = None,
) -> LessonProgressOut:
    view = await progress_tracker.get_progress(
        repos, principal, lesson_id, student_id or principal.user_id
    )
    return LessonProgressOut.of(view)


@router.get("/courses/{course_id}/progress", response_model=CourseProgressOut)
async def get_course_progress(
    course_id: UUID,
    principal: CurrentUser,
    repos: RequestRepos,
    student_id: UUID | None = None,
) -> CourseProgressOut:
    summary = await progress_tracker.get_course_progress(
        repos, principal, course_id, student_id or principal.user_id
    )
    return CourseProgressOut(
        course_id=str(summary.course.id),
        total_lessons=summary.course.total_lessons,
        completed_lessons=summary.completed_lessons,
        enrollment=EnrollmentOut.of(summary.enrollment),
        sections=[
            SectionWithProgressOut(
                section=SectionOut.of(sp.section),
                lessons=[
                    LessonWithProgressOut(
                        lesson=LessonOut.of(lesson, reveal_answers=False),
                        progress=LessonProgressOut.of(view),
                    )
                    for lesson, view in sp.lessons
                ],
            )
            for sp in summary.sections
        ],
    )
