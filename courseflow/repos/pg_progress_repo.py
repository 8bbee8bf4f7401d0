"""PostgreSQL implementation of ProgressRepo."""

from __future__ import annotations

import uuid
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courseflow.db.tables import CourseRow, EnrollmentRow, LessonProgressRow
from courseflow.models.course import Lesson
from courseflow.models.progress import Enrollment, LessonProgress


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- enrollments ---

    async def add_enrollment(self, enrollment: Enrollment) -> None:
        row = EnrollmentRow(
            id=enrollment.id,
            student_id=enrollment.student_id,
            course_id=enrollment.course_id,
            student_name=enrollment.student_name,
            enrolled_at=enrollment.enrolled_at,
            progress=enrollment.progress,
            is_completed=enrollment.is_completed,
            completed_at=enrollment.completed_at,
            certificate_issued=enrollment.certificate_issued,
            certificate_url=enrollment.certificate_url,
            is_active=enrollment.is_active,
            total_time_spent=enrollment.total_time_spent,
            last_activity_at=enrollment.last_activity_at,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError:
            raise ValueError("already enrolled") from None

    async def get_enrollment(self, student_id: UUID, course_id: UUID) -> Enrollment | None:
        stmt = (
            select(EnrollmentRow)
            .where(EnrollmentRow.student_id == student_id)
            .where(EnrollmentRow.course_id == course_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_enrollment(row)

    async def get_enrollment_by_id(self, enrollment_id: UUID) -> Enrollment | None:
        stmt = (
            select(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_enrollment(row)

    async def list_pending_certificates(self, limit: int) -> list[Enrollment]:
        stmt = (
            select(EnrollmentRow)
            .join(CourseRow, CourseRow.id == EnrollmentRow.course_id)
            .where(CourseRow.certificate.is_(True))
            .where(EnrollmentRow.is_completed.is_(True))
            .where(EnrollmentRow.is_active.is_(True))
            .where(EnrollmentRow.certificate_issued.is_(False))
            .order_by(EnrollmentRow.completed_at)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    # --- lesson progress ---

    async def upsert_lesson_progress(
        self,
        student_id: UUID,
        lesson: Lesson,
        *,
        completed: bool,
        seconds: int,
        now: int,
    ) -> LessonProgress:
        """INSERT ... ON CONFLICT DO UPDATE; completion is OR-merged and
        time is added in the statement, so concurrent events never lose
        each other's writes."""
        insert_stmt = pg_insert(LessonProgressRow).values(
            id=uuid.uuid4(),
            student_id=student_id,
            lesson_id=lesson.id,
            course_id=lesson.course_id,
            section_id=lesson.section_id,
            is_completed=completed,
            time_spent_seconds=seconds,
            first_accessed_at=now,
            last_accessed_at=now,
        )
        stmt = insert_stmt.on_conflict_do_update(
            constraint="uq_lesson_progress_student_lesson",
            set_={
                "is_completed": or_(
                    LessonProgressRow.is_completed, insert_stmt.excluded.is_completed
                ),
                "time_spent_seconds": LessonProgressRow.time_spent_seconds
                + insert_stmt.excluded.time_spent_seconds,
                "last_accessed_at": insert_stmt.excluded.last_accessed_at,
            },
        ).returning(
            LessonProgressRow.course_id,
            LessonProgressRow.section_id,
            LessonProgressRow.is_completed,
            LessonProgressRow.time_spent_seconds,
            LessonProgressRow.first_accessed_at,
            LessonProgressRow.last_accessed_at,
        )
        row = (await self._session.execute(stmt)).one()
        return LessonProgress(
            student_id=student_id,
            lesson_id=lesson.id,
            course_id=row.course_id,
            section_id=row.section_id,
            is_completed=row.is_completed,
            time_spent_seconds=row.time_spent_seconds,
            first_accessed_at=row.first_accessed_at,
            last_accessed_at=row.last_accessed_at,
        )

    async def get_lesson_progress(
        self, student_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        stmt = (
            select(LessonProgressRow)
            .where(LessonProgressRow.student_id == student_id)
            .where(LessonProgressRow.lesson_id == lesson_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_lesson_progress(row)

    async def list_lesson_progress(
        self, student_id: UUID, course_id: UUID
    ) -> list[LessonProgress]:
        stmt = (
            select(LessonProgressRow)
            .where(LessonProgressRow.student_id == student_id)
            .where(LessonProgressRow.course_id == course_id)
            .execution_options(populate_existing=True)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_lesson_progress(r) for r in rows]

    async def count_completed(self, student_id: UUID, course_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(LessonProgressRow)
            .where(LessonProgressRow.student_id == student_id)
            .where(LessonProgressRow.course_id == course_id)
            .where(LessonProgressRow.is_completed.is_(True))
        )
        return (await self._session.execute(stmt)).scalar_one()

    # --- enrollment state ---

    async def touch_enrollment(self, enrollment_id: UUID, seconds: int, now: int) -> None:
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .values(
                total_time_spent=EnrollmentRow.total_time_spent + seconds,
                last_activity_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def set_progress(self, enrollment_id: UUID, progress: int) -> None:
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .values(progress=progress)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def mark_completed(self, enrollment_id: UUID, now: int) -> bool:
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .where(EnrollmentRow.is_completed.is_(False))
            .values(is_completed=True, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def claim_certificate(self, enrollment_id: UUID) -> bool:
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .where(EnrollmentRow.certificate_issued.is_(False))
            .values(certificate_issued=True)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1  # 0: a concurrent issuer won the race

    async def release_certificate(self, enrollment_id: UUID) -> None:
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .values(certificate_issued=False, certificate_url=None)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def set_certificate_url(self, enrollment_id: UUID, url: str) -> None:
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .values(certificate_url=url)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        student_id=row.student_id,
        course_id=row.course_id,
        student_name=row.student_name,
        enrolled_at=row.enrolled_at,
        progress=row.progress,
        is_completed=row.is_completed,
        completed_at=row.completed_at,
        certificate_issued=row.certificate_issued,
        certificate_url=row.certificate_url,
        is_active=row.is_active,
        total_time_spent=row.total_time_spent,
        last_activity_at=row.last_activity_at,
    )


def _row_to_lesson_progress(row: LessonProgressRow) -> LessonProgress:
    return LessonProgress(
        student_id=row.student_id,
        lesson_id=row.lesson_id,
        course_id=row.course_id,
        section_id=row.section_id,
        is_completed=row.is_completed,
        time_spent_seconds=row.time_spent_seconds,
        first_accessed_at=row.first_accessed_at,
        last_accessed_at=row.last_accessed_at,
    )
