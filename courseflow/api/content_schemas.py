"""Request/response bodies for lesson content, shared by the routers.

Lesson content arrives as a tagged union on ``type``; pydantic picks the
matching model, validates it, and ``to_domain`` turns it into the frozen
payload dataclass the services work with.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from courseflow.models.course import Lesson, LessonDraft, Section
from courseflow.models.lesson_content import (
    AssignmentContent,
    FileContent,
    LessonContent,
    LinkContent,
    QuizContent,
    QuizQuestion,
    QuizSettings,
    TextContent,
    VideoContent,
    content_to_dict,
)


class VideoIn(BaseModel):
    type: Literal["video"]
    url: str = Field(min_length=1)
    duration_seconds: int = Field(default=0, ge=0)
    thumbnail_url: str | None = None

    def to_domain(self) -> VideoContent:
        return VideoContent(
            url=self.url,
            duration_seconds=self.duration_seconds,
            thumbnail_url=self.thumbnail_url,
        )


class TextIn(BaseModel):
    type: Literal["text"]
    body: str

    def to_domain(self) -> TextContent:
        return TextContent(body=self.body)


class FileIn(BaseModel):
    type: Literal["file"]
    url: str = Field(min_length=1)
    size_bytes: int = Field(default=0, ge=0)
    mime_type: str | None = None

    def to_domain(self) -> FileContent:
        return FileContent(url=self.url, size_bytes=self.size_bytes, mime_type=self.mime_type)


class LinkIn(BaseModel):
    type: Literal["link"]
    url: str = Field(min_length=1)

    def to_domain(self) -> LinkContent:
        return LinkContent(url=self.url)


class QuizQuestionIn(BaseModel):
    question: str = Field(min_length=1)
    options: list[str] = Field(min_length=2)
    correct_answer: str
    points: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _answer_is_an_option(self) -> QuizQuestionIn:
        if self.correct_answer not in self.options:
            raise ValueError("correct_answer must be one of the options")
        return self


class QuizSettingsIn(BaseModel):
    max_attempts: int | None = Field(default=None, ge=1)
    cooldown_seconds: int = Field(default=0, ge=0)
    passing_score: int = Field(default=60, ge=0, le=100)
    time_limit_seconds: int | None = Field(default=None, ge=1)


class QuizIn(BaseModel):
    type: Literal["quiz"]
    questions: list[QuizQuestionIn] = Field(min_length=1)
    settings: QuizSettingsIn = Field(default_factory=QuizSettingsIn)

    def to_domain(self) -> QuizContent:
        return QuizContent(
            questions=tuple(
                QuizQuestion(
                    question=q.question,
                    options=tuple(q.options),
                    correct_answer=q.correct_answer,
                    points=q.points,
                )
                for q in self.questions
            ),
            settings=QuizSettings(**self.settings.model_dump()),
        )


class AssignmentIn(BaseModel):
    type: Literal["assignment"]
    instructions: str
    max_score: int = Field(default=100, ge=1)

    def to_domain(self) -> AssignmentContent:
        return AssignmentContent(instructions=self.instructions, max_score=self.max_score)


ContentIn = Annotated[
    VideoIn | TextIn | FileIn | LinkIn | QuizIn | AssignmentIn,
    Field(discriminator="type"),
]


class LessonIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: ContentIn
    order: int | None = None
    is_visible: bool = True
    is_required: bool = True
    estimated_time: int = Field(default=1, ge=0)

    def to_draft(self) -> LessonDraft:
        return LessonDraft(
            title=self.title.strip(),
            content=self.content.to_domain(),
            is_visible=self.is_visible,
            is_required=self.is_required,
            estimated_time=self.estimated_time,
        )


def public_content(content: LessonContent, *, reveal_answers: bool) -> dict[str, Any]:
    data = content_to_dict(content)
    if isinstance(content, QuizContent) and not reveal_answers:
        for question in data["questions"]:
            question.pop("correct_answer", None)
    return data


class LessonOut(BaseModel):
    id: str
    section_id: str
    course_id: str
    order: int
    title: str
    type: str
    is_visible: bool
    is_required: bool
    estimated_time: int
    content: dict[str, Any]

    @staticmethod
    def of(lesson: Lesson, *, reveal_answers: bool = True) -> LessonOut:
        return LessonOut(
            id=str(lesson.id),
            section_id=str(lesson.section_id),
            course_id=str(lesson.course_id),
            order=lesson.order,
            title=lesson.title,
            type=lesson.type,
            is_visible=lesson.is_visible,
            is_required=lesson.is_required,
            estimated_time=lesson.estimated_time,
            content=public_content(lesson.content, reveal_answers=reveal_answers),
        )


class SectionOut(BaseModel):
    id: str
    course_id: str
    order: int
    title: str
    is_visible: bool

    @staticmethod
    def of(section: Section) -> SectionOut:
        return SectionOut(
            id=str(section.id),
            course_id=str(section.course_id),
            order=section.order,
            title=section.title,
            is_visible=section.is_visible,
        )


class OrderItem(BaseModel):
    id: UUID
    order: int
