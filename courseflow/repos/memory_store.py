"""In-process store backing the InMemory* repos.

Used when DATABASE_URL is unset (local dev, tests).  All in-memory repos
built from the same store see one another's writes, the way the Pg repos
share one database, so cascades and joins behave the same.

Section and course locks are plain ``asyncio.Lock`` objects created on
first use; they stand in for ``SELECT ... FOR UPDATE`` on the parent row.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from uuid import UUID

from courseflow.models.assessment import QuizAttempt
from courseflow.models.certificate import Certificate
from courseflow.models.course import Course, Lesson, Section
from courseflow.models.progress import Enrollment, LessonProgress


@dataclass
class InMemoryStore:
    courses: dict[UUID, Course] = field(default_factory=dict)
    sections: dict[UUID, Section] = field(default_factory=dict)
    lessons: dict[UUID, Lesson] = field(default_factory=dict)
    enrollments: dict[UUID, Enrollment] = field(default_factory=dict)
    lesson_progress: dict[tuple[UUID, UUID], LessonProgress] = field(
        default_factory=dict
    )  # key: (student_id, lesson_id)
    attempts: dict[UUID, QuizAttempt] = field(default_factory=dict)
    certificates: dict[UUID, Certificate] = field(default_factory=dict)
    _locks: dict[UUID, asyncio.Lock] = field(default_factory=dict)

    def clear(self) -> None:
        self.courses.clear()
        self.sections.clear()
        self.lessons.clear()
        self.enrollments.clear()
        self.lesson_progress.clear()
        self.attempts.clear()
        self.certificates.clear()
        self._locks.clear()

    @asynccontextmanager
    async def locked(self, *keys: UUID) -> AsyncIterator[None]:
        """Hold the locks for ``keys``, always acquired in sorted order."""
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                lock = self._locks.setdefault(key, asyncio.Lock())
                await stack.enter_async_context(lock)
            yield


# Process-wide store used by the API and worker without a database.
STORE = InMemoryStore()
