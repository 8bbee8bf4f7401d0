from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from courseflow.models.lesson_content import LessonContent, QuizContent


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    slug: str
    title: str
    owner_id: UUID
    certificate: bool = False
    status: str = "draft"  # draft|published|retired
    total_lessons: int = 0  # derived by the repo from lesson rows

    @staticmethod
    def new(
        *,
        slug: str,
        title: str,
        owner_id: UUID,
        certificate: bool = False,
        status: str = "draft",
    ) -> Course:
        return Course(
            id=uuid4(),
            slug=slug,
            title=title,
            owner_id=owner_id,
            certificate=certificate,
            status=status,
        )


@dataclass(frozen=True, slots=True)
class Section:
    id: UUID
    course_id: UUID
    order: int
    title: str
    is_visible: bool = True

    @staticmethod
    def new(
        *, course_id: UUID, order: int, title: str, is_visible: bool = True
    ) -> Section:
        return Section(
            id=uuid4(),
            course_id=course_id,
            order=order,
            title=title,
            is_visible=is_visible,
        )


@dataclass(frozen=True, slots=True)
class LessonDraft:
    """Everything about a lesson except where it sits."""

    title: str
    content: LessonContent
    is_visible: bool = True
    is_required: bool = True
    estimated_time: int = 1  # minutes

    @property
    def type(self) -> str:
        return self.content.type


@dataclass(frozen=True, slots=True)
class Lesson:
    id: UUID
    section_id: UUID
    course_id: UUID
    order: int
    title: str
    content: LessonContent
    is_visible: bool = True
    is_required: bool = True
    estimated_time: int = 1

    @property
    def type(self) -> str:
        return self.content.type

    @property
    def quiz(self) -> QuizContent | None:
        return self.content if isinstance(self.content, QuizContent) else None

    @staticmethod
    def place(
        draft: LessonDraft, *, section: Section, order: int
    ) -> Lesson:
        return Lesson(
            id=uuid4(),
            section_id=section.id,
            course_id=section.course_id,
            order=order,
            title=draft.title,
            content=draft.content,
            is_visible=draft.is_visible,
            is_required=draft.is_required,
            estimated_time=draft.estimated_time,
        )
