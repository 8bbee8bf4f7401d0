from __future__ import annotations

from typing import Protocol
from uuid import UUID

from courseflow.core.errors import ConflictError
from courseflow.models.assessment import QuizAttempt
from courseflow.repos.memory_store import InMemoryStore


class AttemptRepo(Protocol):
    async def add(self, attempt: QuizAttempt) -> None: ...
    async def get(self, attempt_id: UUID) -> QuizAttempt | None: ...
    async def list_for_student_lesson(
        self, student_id: UUID, lesson_id: UUID
    ) -> list[QuizAttempt]: ...
    async def list_for_lesson(self, lesson_id: UUID) -> list[QuizAttempt]: ...
    async def list_for_student(
        self,
        student_id: UUID,
        *,
        course_id: UUID | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[QuizAttempt], int]: ...


class InMemoryAttemptRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def add(self, attempt: QuizAttempt) -> None:
        """Append an attempt.  Raises ConflictError if the
        (lesson, student, attempt_number) slot is already taken."""
        for a in self._store.attempts.values():
            if (
                a.lesson_id == attempt.lesson_id
                and a.student_id == attempt.student_id
                and a.attempt_number == attempt.attempt_number
            ):
                raise ConflictError(
                    "attempt number already recorded",
                    meta={"attempt_number": attempt.attempt_number},
                )
        self._store.attempts[attempt.id] = attempt

    async def get(self, attempt_id: UUID) -> QuizAttempt | None:
        return self._store.attempts.get(attempt_id)

    async def list_for_student_lesson(
        self, student_id: UUID, lesson_id: UUID
    ) -> list[QuizAttempt]:
        return sorted(
            (
                a
                for a in self._store.attempts.values()
                if a.student_id == student_id and a.lesson_id == lesson_id
            ),
            key=lambda a: a.attempt_number,
        )

    async def list_for_lesson(self, lesson_id: UUID) -> list[QuizAttempt]:
        return sorted(
            (a for a in self._store.attempts.values() if a.lesson_id == lesson_id),
            key=lambda a: a.submitted_at,
        )

    async def list_for_student(
        self,
        student_id: UUID,
        *,
        course_id: UUID | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[QuizAttempt], int]:
        matching = [
            a
            for a in self._store.attempts.values()
            if a.student_id == student_id
            and (course_id is None or a.course_id == course_id)
        ]
        matching.sort(key=lambda a: a.submitted_at, reverse=True)
        return matching[offset : offset + limit], len(matching)
