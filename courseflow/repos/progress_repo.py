from __future__ import annotations

import dataclasses
from typing import Protocol
from uuid import UUID

from courseflow.models.course import Lesson
from courseflow.models.progress import Enrollment, LessonProgress
from courseflow.repos.memory_store import InMemoryStore


class ProgressRepo(Protocol):
    """LessonProgress rows and the Enrollment aggregate.

    Every write here is a single atomic step: the upsert merges with
    ``is_completed OR new`` and adds the time delta, and the state flips
    on Enrollment are conditional updates that report whether they won.
    """

    async def add_enrollment(self, enrollment: Enrollment) -> None: ...
    async def get_enrollment(
        self, student_id: UUID, course_id: UUID
    ) -> Enrollment | None: ...
    async def get_enrollment_by_id(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def list_pending_certificates(self, limit: int) -> list[Enrollment]: ...

    async def upsert_lesson_progress(
        self,
        student_id: UUID,
        lesson: Lesson,
        *,
        completed: bool,
        seconds: int,
        now: int,
    ) -> LessonProgress: ...
    async def get_lesson_progress(
        self, student_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None: ...
    async def list_lesson_progress(
        self, student_id: UUID, course_id: UUID
    ) -> list[LessonProgress]: ...
    async def count_completed(self, student_id: UUID, course_id: UUID) -> int: ...

    async def touch_enrollment(self, enrollment_id: UUID, seconds: int, now: int) -> None: ...
    async def set_progress(self, enrollment_id: UUID, progress: int) -> None: ...
    async def mark_completed(self, enrollment_id: UUID, now: int) -> bool: ...
    async def claim_certificate(self, enrollment_id: UUID) -> bool: ...
    async def release_certificate(self, enrollment_id: UUID) -> None: ...
    async def set_certificate_url(self, enrollment_id: UUID, url: str) -> None: ...


class InMemoryProgressRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    # --- enrollments ---

    async def add_enrollment(self, enrollment: Enrollment) -> None:
        if await self.get_enrollment(enrollment.student_id, enrollment.course_id):
            raise ValueError("already enrolled")
        self._store.enrollments[enrollment.id] = enrollment

    async def get_enrollment(self, student_id: UUID, course_id: UUID) -> Enrollment | None:
        for e in self._store.enrollments.values():
            if e.student_id == student_id and e.course_id == course_id:
                return e
        return None

    async def get_enrollment_by_id(self, enrollment_id: UUID) -> Enrollment | None:
        return self._store.enrollments.get(enrollment_id)

    async def list_pending_certificates(self, limit: int) -> list[Enrollment]:
        """Completed, active, uncertified enrollments in certifiable courses."""
        pending = [
            e
            for e in self._store.enrollments.values()
            if e.is_completed
            and e.is_active
            and not e.certificate_issued
            and (c := self._store.courses.get(e.course_id)) is not None
            and c.certificate
        ]
        pending.sort(key=lambda e: e.completed_at or 0)
        return pending[:limit]

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
        key = (student_id, lesson.id)
        current = self._store.lesson_progress.get(key)
        if current is None:
            current = LessonProgress(
                student_id=student_id,
                lesson_id=lesson.id,
                course_id=lesson.course_id,
                section_id=lesson.section_id,
                first_accessed_at=now,
            )
        updated = dataclasses.replace(
            current,
            is_completed=current.is_completed or completed,
            time_spent_seconds=current.time_spent_seconds + seconds,
            last_accessed_at=now,
        )
        self._store.lesson_progress[key] = updated
        return updated

    async def get_lesson_progress(
        self, student_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        return self._store.lesson_progress.get((student_id, lesson_id))

    async def list_lesson_progress(
        self, student_id: UUID, course_id: UUID
    ) -> list[LessonProgress]:
        return [
            lp
            for (sid, _), lp in self._store.lesson_progress.items()
            if sid == student_id and lp.course_id == course_id
        ]

    async def count_completed(self, student_id: UUID, course_id: UUID) -> int:
        return sum(
            1
            for lp in await self.list_lesson_progress(student_id, course_id)
            if lp.is_completed
        )

    # --- enrollment state ---

    def _replace(self, enrollment_id: UUID, **changes) -> None:
        e = self._store.enrollments.get(enrollment_id)
        if e is None:
            raise KeyError("enrollment not found")
        self._store.enrollments[enrollment_id] = dataclasses.replace(e, **changes)

    async def touch_enrollment(self, enrollment_id: UUID, seconds: int, now: int) -> None:
        e = self._store.enrollments[enrollment_id]
        self._replace(
            enrollment_id,
            total_time_spent=e.total_time_spent + seconds,
            last_activity_at=now,
        )

    async def set_progress(self, enrollment_id: UUID, progress: int) -> None:
        self._replace(enrollment_id, progress=progress)

    async def mark_completed(self, enrollment_id: UUID, now: int) -> bool:
        """Flip is_completed false -> true.  False if it was already set."""
        e = self._store.enrollments[enrollment_id]
        if e.is_completed:
            return False
        self._replace(enrollment_id, is_completed=True, completed_at=now)
        return True

    async def claim_certificate(self, enrollment_id: UUID) -> bool:
        """Flip certificate_issued false -> true.  False if already claimed."""
        e = self._store.enrollments[enrollment_id]
        if e.certificate_issued:
            return False
        self._replace(enrollment_id, certificate_issued=True)
        return True

    async def release_certificate(self, enrollment_id: UUID) -> None:
        self._replace(enrollment_id, certificate_issued=False, certificate_url=None)

    async def set_certificate_url(self, enrollment_id: UUID, url: str) -> None:
        self._replace(enrollment_id, certificate_url=url)
