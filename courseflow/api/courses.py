"""Course, enrollment and section endpoints.

Section ordering goes through the order sequencer; these handlers only
translate HTTP bodies into service calls and results into response models.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from courseflow.api.content_schemas import OrderItem, SectionOut
from courseflow.api.dependencies import CurrentUser, RequestRepos
from courseflow.models.course import Course
from courseflow.models.progress import Enrollment
from courseflow.services import course_service, order_sequencer
from courseflow.services.access import load_course

router = APIRouter(prefix="/v1/courses", tags=["courses"])


class CourseIn(BaseModel):
    slug: str = Field(min_length=1, max_length=120)
    title: str = Field(min_length=1, max_length=200)
    certificate: bool = False
    status: str = Field(default="draft", pattern="^(draft|published|retired)$")


class CourseOut(BaseModel):
    id: str
    slug: str
    title: str
    owner_id: str
    certificate: bool
    status: str
    total_lessons: int

    @staticmethod
    def of(course: Course) -> CourseOut:
        return CourseOut(
            id=str(course.id),
            slug=course.slug,
            title=course.title,
            owner_id=str(course.owner_id),
            certificate=course.certificate,
            status=course.status,
            total_lessons=course.total_lessons,
        )


class EnrollmentOut(BaseModel):
    id: str
    student_id: str
    course_id: str
    enrolled_at: int
    progress: int
    is_completed: bool
    completed_at: int | None
    certificate_issued: bool
    certificate_url: str | None
    total_time_spent: int
    last_activity_at: int | None

    @staticmethod
    def of(enrollment: Enrollment) -> EnrollmentOut:
        return EnrollmentOut(
            id=str(enrollment.id),
            student_id=str(enrollment.student_id),
            course_id=str(enrollment.course_id),
            enrolled_at=enrollment.enrolled_at,
            progress=enrollment.progress,
            is_completed=enrollment.is_completed,
            completed_at=enrollment.completed_at,
            certificate_issued=enrollment.certificate_issued,
            certificate_url=enrollment.certificate_url,
            total_time_spent=enrollment.total_time_spent,
            last_activity_at=enrollment.last_activity_at,
        )


class SectionIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    order: int | None = None
    is_visible: bool = True


class SectionOrderIn(BaseModel):
    sections: list[OrderItem]


@router.post("", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
async def create_course(
    payload: CourseIn, principal: CurrentUser, repos: RequestRepos
) -> CourseOut:
    course = await course_service.create_course(
        repos,
        principal,
        slug=payload.slug,
        title=payload.title,
        certificate=payload.certificate,
        status=payload.status,
    )
    return CourseOut.of(course)


@router.get("/{course_id}", response_model=CourseOut)
async def get_course(
    course_id: UUID, _principal: CurrentUser, repos: RequestRepos
) -> CourseOut:
    return CourseOut.of(await course_service.get_course(repos, course_id))


@router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_in_course(
    course_id: UUID, principal: CurrentUser, repos: RequestRepos
) -> EnrollmentOut:
    return EnrollmentOut.of(await course_service.enroll(repos, principal, course_id))


@router.get("/{course_id}/sections", response_model=list[SectionOut])
async def list_sections(
    course_id: UUID, principal: CurrentUser, repos: RequestRepos
) -> list[SectionOut]:
    course = await load_course(repos, course_id)
    sections = await order_sequencer.list_sections(
        repos, course_id, include_hidden=principal.owns(course.owner_id)
    )
    return [SectionOut.of(s) for s in sections]


@router.post(
    "/{course_id}/sections",
    response_model=list[SectionOut],
    status_code=status.HTTP_201_CREATED,
)
async def create_section(
    course_id: UUID, payload: SectionIn, principal: CurrentUser, repos: RequestRepos
) -> list[SectionOut]:
    sections = await order_sequencer.create_section(
        repos,
        principal,
        course_id,
        payload.title,
        payload.order,
        is_visible=payload.is_visible,
    )
    return [SectionOut.of(s) for s in sections]


@router.put("/{course_id}/sections/order", response_model=list[SectionOut])
async def reorder_sections(
    course_id: UUID, payload: SectionOrderIn, principal: CurrentUser, repos: RequestRepos
) -> list[SectionOut]:
    sections = await order_sequencer.reorder_sections(
        repos, principal, course_id, [(item.id, item.order) for item in payload.sections]
    )
    return [SectionOut.of(s) for s in sections]
