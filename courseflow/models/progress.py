from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class LessonProgress:
    """One student's completion/time record for one lesson.

    Created lazily on the first interaction.  ``is_completed`` only ever
    goes from False to True.
    """

    student_id: UUID
    lesson_id: UUID
    course_id: UUID
    section_id: UUID
    is_completed: bool = False
    time_spent_seconds: int = 0
    first_accessed_at: int | None = None
    last_accessed_at: int | None = None


@dataclass(frozen=True, slots=True)
class Enrollment:
    """Aggregate progress/completion state for a (student, course) pair."""

    id: UUID
    student_id: UUID
    course_id: UUID
    student_name: str
    enrolled_at: int
    progress: int = 0
    is_completed: bool = False
    completed_at: int | None = None
    certificate_issued: bool = False
    certificate_url: str | None = None
    is_active: bool = True
    total_time_spent: int = 0
    last_activity_at: int | None = None

    @staticmethod
    def new(
        *, student_id: UUID, course_id: UUID, student_name: str, enrolled_at: int
    ) -> Enrollment:
        return Enrollment(
            id=uuid4(),
            student_id=student_id,
            course_id=course_id,
            student_name=student_name,
            enrolled_at=enrolled_at,
        )
