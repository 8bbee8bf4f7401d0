from __future__ import annotations

import dataclasses
from contextlib import AbstractAsyncContextManager
from typing import Protocol
from uuid import UUID

from courseflow.models.course import Course, Lesson, Section
from courseflow.repos.memory_store import InMemoryStore


class ContentRepo(Protocol):
    """Courses, sections and lessons, plus the positional primitives the
    order sequencer composes.

    ``shift_*`` moves every row of one parent whose order is >= ``from_order``
    by ``delta`` in a single step; ``apply_*_orders`` writes a full
    id -> order mapping for one parent.  Callers hold the parent lock.
    """

    async def add_course(self, course: Course) -> None: ...
    async def get_course(self, course_id: UUID) -> Course | None: ...
    async def count_course_lessons(self, course_id: UUID) -> int: ...
    def course_locked(self, course_id: UUID) -> AbstractAsyncContextManager[None]: ...

    async def add_section(self, section: Section) -> None: ...
    async def get_section(self, section_id: UUID) -> Section | None: ...
    async def list_sections(self, course_id: UUID) -> list[Section]: ...
    async def delete_section(self, section_id: UUID) -> None: ...
    async def shift_sections(
        self, course_id: UUID, from_order: int, delta: int
    ) -> None: ...
    async def apply_section_orders(
        self, course_id: UUID, orders: dict[UUID, int]
    ) -> None: ...
    def section_locked(
        self, *section_ids: UUID
    ) -> AbstractAsyncContextManager[None]: ...

    async def add_lesson(self, lesson: Lesson) -> None: ...
    async def get_lesson(self, lesson_id: UUID) -> Lesson | None: ...
    async def list_lessons(self, section_id: UUID) -> list[Lesson]: ...
    async def list_course_lessons(self, course_id: UUID) -> list[Lesson]: ...
    async def delete_lesson(self, lesson_id: UUID) -> None: ...
    async def relocate_lesson(
        self, lesson_id: UUID, section_id: UUID, order: int
    ) -> None: ...
    async def shift_lessons(
        self,
        section_id: UUID,
        from_order: int,
        delta: int,
        *,
        exclude: UUID | None = None,
    ) -> None: ...
    async def apply_lesson_orders(
        self, section_id: UUID, orders: dict[UUID, int]
    ) -> None: ...


class InMemoryContentRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    # --- courses ---

    async def add_course(self, course: Course) -> None:
        if any(c.slug == course.slug for c in self._store.courses.values()):
            raise ValueError("slug already exists")
        self._store.courses[course.id] = course

    async def get_course(self, course_id: UUID) -> Course | None:
        course = self._store.courses.get(course_id)
        if course is None:
            return None
        return dataclasses.replace(
            course, total_lessons=await self.count_course_lessons(course_id)
        )

    async def count_course_lessons(self, course_id: UUID) -> int:
        return sum(1 for le in self._store.lessons.values() if le.course_id == course_id)

    def course_locked(self, course_id: UUID) -> AbstractAsyncContextManager[None]:
        return self._store.locked(course_id)

    # --- sections ---

    async def add_section(self, section: Section) -> None:
        self._store.sections[section.id] = section

    async def get_section(self, section_id: UUID) -> Section | None:
        return self._store.sections.get(section_id)

    async def list_sections(self, course_id: UUID) -> list[Section]:
        return sorted(
            (s for s in self._store.sections.values() if s.course_id == course_id),
            key=lambda s: s.order,
        )

    async def delete_section(self, section_id: UUID) -> None:
        self._store.sections.pop(section_id, None)

    async def shift_sections(self, course_id: UUID, from_order: int, delta: int) -> None:
        for s in list(self._store.sections.values()):
            if s.course_id == course_id and s.order >= from_order:
                self._store.sections[s.id] = dataclasses.replace(s, order=s.order + delta)

    async def apply_section_orders(self, course_id: UUID, orders: dict[UUID, int]) -> None:
        for section_id, order in orders.items():
            s = self._store.sections[section_id]
            self._store.sections[section_id] = dataclasses.replace(s, order=order)

    def section_locked(self, *section_ids: UUID) -> AbstractAsyncContextManager[None]:
        return self._store.locked(*section_ids)

    # --- lessons ---

    async def add_lesson(self, lesson: Lesson) -> None:
        self._store.lessons[lesson.id] = lesson

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        return self._store.lessons.get(lesson_id)

    async def list_lessons(self, section_id: UUID) -> list[Lesson]:
        return sorted(
            (le for le in self._store.lessons.values() if le.section_id == section_id),
            key=lambda le: le.order,
        )

    async def list_course_lessons(self, course_id: UUID) -> list[Lesson]:
        sections = {s.id: s.order for s in await self.list_sections(course_id)}
        return sorted(
            (le for le in self._store.lessons.values() if le.course_id == course_id),
            key=lambda le: (sections.get(le.section_id, 0), le.order),
        )

    async def delete_lesson(self, lesson_id: UUID) -> None:
        """Remove the lesson with its progress rows and quiz attempts."""
        self._store.lessons.pop(lesson_id, None)
        for key in [k for k in self._store.lesson_progress if k[1] == lesson_id]:
            del self._store.lesson_progress[key]
        for attempt_id in [
            a.id for a in self._store.attempts.values() if a.lesson_id == lesson_id
        ]:
            del self._store.attempts[attempt_id]

    async def relocate_lesson(self, lesson_id: UUID, section_id: UUID, order: int) -> None:
        """Move a lesson row; its progress rows follow the new section."""
        lesson = self._store.lessons[lesson_id]
        self._store.lessons[lesson_id] = dataclasses.replace(
            lesson, section_id=section_id, order=order
        )
        for key, lp in list(self._store.lesson_progress.items()):
            if key[1] == lesson_id:
                self._store.lesson_progress[key] = dataclasses.replace(
                    lp, section_id=section_id
                )

    async def shift_lessons(
        self,
        section_id: UUID,
        from_order: int,
        delta: int,
        *,
        exclude: UUID | None = None,
    ) -> None:
        for le in list(self._store.lessons.values()):
            if le.section_id != section_id or le.id == exclude:
                continue
            if le.order >= from_order:
                self._store.lessons[le.id] = dataclasses.replace(le, order=le.order + delta)

    async def apply_lesson_orders(self, section_id: UUID, orders: dict[UUID, int]) -> None:
        for lesson_id, order in orders.items():
            le = self._store.lessons[lesson_id]
            self._store.lessons[lesson_id] = dataclasses.replace(le, order=order)
