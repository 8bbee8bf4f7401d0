"""Section and lesson ordering endpoints.

Every mutation returns the freshly ordered list of the affected parent so
clients never have to patch their local copy by hand.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel

from courseflow.api.content_schemas import LessonIn, LessonOut, OrderItem, SectionOut
from courseflow.api.dependencies import CurrentUser, RequestRepos
from courseflow.services import order_sequencer
from courseflow.services.access import load_course, load_section

router = APIRouter(prefix="/v1", tags=["content"])


class LessonOrderIn(BaseModel):
    lessons: list[OrderItem]


class MoveLessonIn(BaseModel):
    to_section_id: UUID
    order: int | None = None
    from_section_id: UUID | None = None


@router.delete("/sections/{section_id}", response_model=list[SectionOut])
async def delete_section(
    section_id: UUID, principal: CurrentUser, repos: RequestRepos
) -> list[SectionOut]:
    sections = await order_sequencer.delete_section(repos, principal, section_id)
    return [SectionOut.of(s) for s in sections]


@router.get("/sections/{section_id}/lessons", response_model=list[LessonOut])
async def list_lessons(
    section_id: UUID, principal: CurrentUser, repos: RequestRepos
) -> list[LessonOut]:
    section = await load_section(repos, section_id)
    course = await load_course(repos, section.course_id)
    # Authors see hidden lessons and quiz answers; everyone else does not.
    is_author = principal.owns(course.owner_id)
    lessons = await order_sequencer.list_lessons(
        repos, section_id, include_hidden=is_author
    )
    return [LessonOut.of(le, reveal_answers=is_author) for le in lessons]


@router.post(
    "/sections/{section_id}/lessons",
    response_model=list[LessonOut],
    status_code=status.HTTP_201_CREATED,
)
async def insert_lesson(
    section_id: UUID, payload: LessonIn, principal: CurrentUser, repos: RequestRepos
) -> list[LessonOut]:
    lessons = await order_sequencer.insert_lesson(
        repos, principal, section_id, payload.to_draft(), payload.order
    )
    return [LessonOut.of(le) for le in lessons]


@router.put("/sections/{section_id}/lessons/order", response_model=list[LessonOut])
async def reorder_lessons(
    section_id: UUID, payload: LessonOrderIn, principal: CurrentUser, repos: RequestRepos
) -> list[LessonOut]:
    lessons = await order_sequencer.reorder_lessons(
        repos, principal, section_id, [(item.id, item.order) for item in payload.lessons]
    )
    return [LessonOut.of(le) for le in lessons]


@router.delete("/lessons/{lesson_id}", response_model=list[LessonOut])
async def delete_lesson(
    lesson_id: UUID, principal: CurrentUser, repos: RequestRepos
) -> list[LessonOut]:
    lessons = await order_sequencer.delete_lesson(repos, principal, lesson_id)
    return [LessonOut.of(le) for le in lessons]


@router.post("/lessons/{lesson_id}/move", response_model=list[LessonOut])
async def move_lesson(
    lesson_id: UUID, payload: MoveLessonIn, principal: CurrentUser, repos: RequestRepos
) -> list[LessonOut]:
    """Returns the destination section's lessons."""
    lessons = await order_sequencer.move_lesson(
        repos,
        principal,
        lesson_id,
        payload.to_section_id,
        payload.order,
        payload.from_section_id,
    )
    return [LessonOut.of(le) for le in lessons]
