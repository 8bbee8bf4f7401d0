"""PostgreSQL implementation of ContentRepo."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courseflow.db.tables import (
    CourseRow,
    LessonProgressRow,
    LessonRow,
    QuizAttemptRow,
    SectionRow,
)
from courseflow.models.course import Course, Lesson, Section
from courseflow.models.lesson_content import content_from_dict, content_to_dict


class PgContentRepo:
    """Satisfies the ContentRepo Protocol using PostgreSQL.

    Position shifts are single UPDATE statements; the deferred unique
    constraints on (parent, position) tolerate the transient duplicates.
    Reads use populate_existing so rows touched by bulk UPDATEs earlier in
    the transaction are never served stale from the identity map.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- courses ---

    async def add_course(self, course: Course) -> None:
        row = CourseRow(
            id=course.id,
            slug=course.slug,
            title=course.title,
            owner_id=course.owner_id,
            certificate=course.certificate,
            status=course.status,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError:
            raise ValueError("slug already exists") from None

    async def get_course(self, course_id: UUID) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        if row is None:
            return None
        return _row_to_course(row, await self.count_course_lessons(course_id))

    async def count_course_lessons(self, course_id: UUID) -> int:
        stmt = select(func.count()).select_from(LessonRow).where(
            LessonRow.course_id == course_id
        )
        return (await self._session.execute(stmt)).scalar_one()

    @asynccontextmanager
    async def course_locked(self, course_id: UUID) -> AsyncIterator[None]:
        stmt = select(CourseRow.id).where(CourseRow.id == course_id).with_for_update()
        await self._session.execute(stmt)
        yield

    # --- sections ---

    async def add_section(self, section: Section) -> None:
        row = SectionRow(
            id=section.id,
            course_id=section.course_id,
            position=section.order,
            title=section.title,
            is_visible=section.is_visible,
        )
        self._session.add(row)
        await self._session.flush()

    async def get_section(self, section_id: UUID) -> Section | None:
        stmt = (
            select(SectionRow)
            .where(SectionRow.id == section_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_section(row)

    async def list_sections(self, course_id: UUID) -> list[Section]:
        stmt = (
            select(SectionRow)
            .where(SectionRow.course_id == course_id)
            .order_by(SectionRow.position)
            .execution_options(populate_existing=True)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_section(r) for r in rows]

    async def delete_section(self, section_id: UUID) -> None:
        await self._session.execute(delete(SectionRow).where(SectionRow.id == section_id))

    async def shift_sections(self, course_id: UUID, from_order: int, delta: int) -> None:
        stmt = (
            update(SectionRow)
            .where(SectionRow.course_id == course_id)
            .where(SectionRow.position >= from_order)
            .values(position=SectionRow.position + delta)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def apply_section_orders(self, course_id: UUID, orders: dict[UUID, int]) -> None:
        for section_id, order in orders.items():
            stmt = (
                update(SectionRow)
                .where(SectionRow.id == section_id)
                .where(SectionRow.course_id == course_id)
                .values(position=order)
                .execution_options(synchronize_session=False)
            )
            await self._session.execute(stmt)

    @asynccontextmanager
    async def section_locked(self, *section_ids: UUID) -> AsyncIterator[None]:
        """SELECT ... FOR UPDATE on the section rows, in id order."""
        stmt = (
            select(SectionRow.id)
            .where(SectionRow.id.in_(sorted(set(section_ids))))
            .order_by(SectionRow.id)
            .with_for_update()
        )
        await self._session.execute(stmt)
        yield

    # --- lessons ---

    async def add_lesson(self, lesson: Lesson) -> None:
        row = LessonRow(
            id=lesson.id,
            section_id=lesson.section_id,
            course_id=lesson.course_id,
            position=lesson.order,
            title=lesson.title,
            type=lesson.type,
            content=content_to_dict(lesson.content),
            is_visible=lesson.is_visible,
            is_required=lesson.is_required,
            estimated_time=lesson.estimated_time,
        )
        self._session.add(row)
        await self._session.flush()

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        stmt = (
            select(LessonRow)
            .where(LessonRow.id == lesson_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_lesson(row)

    async def list_lessons(self, section_id: UUID) -> list[Lesson]:
        stmt = (
            select(LessonRow)
            .where(LessonRow.section_id == section_id)
            .order_by(LessonRow.position)
            .execution_options(populate_existing=True)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_lesson(r) for r in rows]

    async def list_course_lessons(self, course_id: UUID) -> list[Lesson]:
        stmt = (
            select(LessonRow)
            .join(SectionRow, SectionRow.id == LessonRow.section_id)
            .where(LessonRow.course_id == course_id)
            .order_by(SectionRow.position, LessonRow.position)
            .execution_options(populate_existing=True)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_lesson(r) for r in rows]

    async def delete_lesson(self, lesson_id: UUID) -> None:
        await self._session.execute(
            delete(LessonProgressRow).where(LessonProgressRow.lesson_id == lesson_id)
        )
        await self._session.execute(
            delete(QuizAttemptRow).where(QuizAttemptRow.lesson_id == lesson_id)
        )
        await self._session.execute(delete(LessonRow).where(LessonRow.id == lesson_id))

    async def relocate_lesson(self, lesson_id: UUID, section_id: UUID, order: int) -> None:
        await self._session.execute(
            update(LessonRow)
            .where(LessonRow.id == lesson_id)
            .values(section_id=section_id, position=order)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(
            update(LessonProgressRow)
            .where(LessonProgressRow.lesson_id == lesson_id)
            .values(section_id=section_id)
            .execution_options(synchronize_session=False)
        )

    async def shift_lessons(
        self,
        section_id: UUID,
        from_order: int,
        delta: int,
        *,
        exclude: UUID | None = None,
    ) -> None:
        stmt = (
            update(LessonRow)
            .where(LessonRow.section_id == section_id)
            .where(LessonRow.position >= from_order)
            .values(position=LessonRow.position + delta)
            .execution_options(synchronize_session=False)
        )
        if exclude is not None:
            stmt = stmt.where(LessonRow.id != exclude)
        await self._session.execute(stmt)

    async def apply_lesson_orders(self, section_id: UUID, orders: dict[UUID, int]) -> None:
        for lesson_id, order in orders.items():
            stmt = (
                update(LessonRow)
                .where(LessonRow.id == lesson_id)
                .where(LessonRow.section_id == section_id)
                .values(position=order)
                .execution_options(synchronize_session=False)
            )
            await self._session.execute(stmt)


def _row_to_course(row: CourseRow, total_lessons: int) -> Course:
    return Course(
        id=row.id,
        slug=row.slug,
        title=row.title,
        owner_id=row.owner_id,
        certificate=row.certificate,
        status=row.status,
        total_lessons=total_lessons,
    )


def _row_to_section(row: SectionRow) -> Section:
    return Section(
        id=row.id,
        course_id=row.course_id,
        order=row.position,
        title=row.title,
        is_visible=row.is_visible,
    )


def _row_to_lesson(row: LessonRow) -> Lesson:
    return Lesson(
        id=row.id,
        section_id=row.section_id,
        course_id=row.course_id,
        order=row.position,
        title=row.title,
        content=content_from_dict(row.content),
        is_visible=row.is_visible,
        is_required=row.is_required,
        estimated_time=row.estimated_time,
    )
