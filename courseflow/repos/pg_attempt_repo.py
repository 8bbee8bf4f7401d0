"""PostgreSQL implementation of AttemptRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courseflow.core.errors import ConflictError
from courseflow.db.tables import QuizAttemptRow
from courseflow.models.assessment import AttemptAnswer, QuizAttempt


class PgAttemptRepo:
    """Satisfies the AttemptRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, attempt: QuizAttempt) -> None:
        """Insert inside a SAVEPOINT so a uniqueness violation rolls back
        only this insert and the caller can retry in the same transaction."""
        row = QuizAttemptRow(
            id=attempt.id,
            lesson_id=attempt.lesson_id,
            course_id=attempt.course_id,
            student_id=attempt.student_id,
            attempt_number=attempt.attempt_number,
            answers=[
                {
                    "question_index": a.question_index,
                    "answer": a.answer,
                    "is_correct": a.is_correct,
                    "points": a.points,
                }
                for a in attempt.answers
            ],
            score=attempt.score,
            total_points=attempt.total_points,
            percentage=attempt.percentage,
            correct=attempt.correct,
            incorrect=attempt.incorrect,
            unanswered=attempt.unanswered,
            time_spent=attempt.time_spent,
            started_at=attempt.started_at,
            submitted_at=attempt.submitted_at,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError:
            raise ConflictError(
                "attempt number already recorded",
                meta={"attempt_number": attempt.attempt_number},
            ) from None

    async def get(self, attempt_id: UUID) -> QuizAttempt | None:
        row = await self._session.get(QuizAttemptRow, attempt_id)
        if row is None:
            return None
        return _row_to_attempt(row)

    async def list_for_student_lesson(
        self, student_id: UUID, lesson_id: UUID
    ) -> list[QuizAttempt]:
        stmt = (
            select(QuizAttemptRow)
            .where(QuizAttemptRow.student_id == student_id)
            .where(QuizAttemptRow.lesson_id == lesson_id)
            .order_by(QuizAttemptRow.attempt_number)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]

    async def list_for_lesson(self, lesson_id: UUID) -> list[QuizAttempt]:
        stmt = (
            select(QuizAttemptRow)
            .where(QuizAttemptRow.lesson_id == lesson_id)
            .order_by(QuizAttemptRow.submitted_at)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]

    async def list_for_student(
        self,
        student_id: UUID,
        *,
        course_id: UUID | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[QuizAttempt], int]:
        filters = [QuizAttemptRow.student_id == student_id]
        if course_id is not None:
            filters.append(QuizAttemptRow.course_id == course_id)

        count_stmt = select(func.count()).select_from(QuizAttemptRow).where(*filters)
        total = (await self._session.execute(count_stmt)).scalar_one()

        stmt = (
            select(QuizAttemptRow)
            .where(*filters)
            .order_by(QuizAttemptRow.submitted_at.desc())
            .offset(offset)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows], total


def _row_to_attempt(row: QuizAttemptRow) -> QuizAttempt:
    return QuizAttempt(
        id=row.id,
        lesson_id=row.lesson_id,
        course_id=row.course_id,
        student_id=row.student_id,
        attempt_number=row.attempt_number,
        answers=tuple(
            AttemptAnswer(
                question_index=a["question_index"],
                answer=a.get("answer"),
                is_correct=a["is_correct"],
                points=a["points"],
            )
            for a in row.answers
        ),
        score=row.score,
        total_points=row.total_points,
        percentage=row.percentage,
        correct=row.correct,
        incorrect=row.incorrect,
        unanswered=row.unanswered,
        time_spent=row.time_spent,
        submitted_at=row.submitted_at,
        started_at=row.started_at,
    )
