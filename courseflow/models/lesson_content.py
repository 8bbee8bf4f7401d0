"""Per-type lesson payloads.

Each lesson type carries its own frozen payload class.  The HTTP layer
validates the tagged union with pydantic before anything reaches the
services; the database stores the payload as JSON in ``lessons.content``
and ``content_from_dict`` rebuilds it.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

LESSON_TYPES = ("video", "text", "file", "link", "quiz", "assignment")


@dataclass(frozen=True, slots=True)
class VideoContent:
    url: str
    duration_seconds: int = 0
    thumbnail_url: str | None = None
    type: str = field(default="video", init=False)


@dataclass(frozen=True, slots=True)
class TextContent:
    body: str
    type: str = field(default="text", init=False)


@dataclass(frozen=True, slots=True)
class FileContent:
    url: str
    size_bytes: int = 0
    mime_type: str | None = None
    type: str = field(default="file", init=False)


@dataclass(frozen=True, slots=True)
class LinkContent:
    url: str
    type: str = field(default="link", init=False)


@dataclass(frozen=True, slots=True)
class QuizQuestion:
    question: str
    options: tuple[str, ...]
    correct_answer: str
    points: int = 1


@dataclass(frozen=True, slots=True)
class QuizSettings:
    max_attempts: int | None = None
    cooldown_seconds: int = 0
    passing_score: int = 60
    time_limit_seconds: int | None = None


@dataclass(frozen=True, slots=True)
class QuizContent:
    questions: tuple[QuizQuestion, ...]
    settings: QuizSettings = QuizSettings()
    type: str = field(default="quiz", init=False)

    @property
    def total_points(self) -> int:
        return sum(q.points for q in self.questions)


@dataclass(frozen=True, slots=True)
class AssignmentContent:
    instructions: str
    max_score: int = 100
    type: str = field(default="assignment", init=False)


LessonContent = (
    VideoContent
    | TextContent
    | FileContent
    | LinkContent
    | QuizContent
    | AssignmentContent
)


def content_to_dict(content: LessonContent) -> dict[str, Any]:
    data = asdict(content)
    if isinstance(content, QuizContent):
        # asdict keeps tuples; JSON columns hand lists back
        data["questions"] = [
            {**q, "options": list(q["options"])} for q in data["questions"]
        ]
    return data


def content_from_dict(data: dict[str, Any]) -> LessonContent:
    kind = data.get("type")
    if kind == "video":
        return VideoContent(
            url=data["url"],
            duration_seconds=int(data.get("duration_seconds", 0)),
            thumbnail_url=data.get("thumbnail_url"),
        )
    if kind == "text":
        return TextContent(body=data["body"])
    if kind == "file":
        return FileContent(
            url=data["url"],
            size_bytes=int(data.get("size_bytes", 0)),
            mime_type=data.get("mime_type"),
        )
    if kind == "link":
        return LinkContent(url=data["url"])
    if kind == "quiz":
        settings = data.get("settings") or {}
        return QuizContent(
            questions=tuple(
                QuizQuestion(
                    question=q["question"],
                    options=tuple(q.get("options", ())),
                    correct_answer=q["correct_answer"],
                    points=int(q.get("points", 1)),
                )
                for q in data.get("questions", ())
            ),
            settings=QuizSettings(
                max_attempts=settings.get("max_attempts"),
                cooldown_seconds=int(settings.get("cooldown_seconds", 0)),
                passing_score=int(settings.get("passing_score", 60)),
                time_limit_seconds=settings.get("time_limit_seconds"),
            ),
        )
    if kind == "assignment":
        return AssignmentContent(
            instructions=data["instructions"],
            max_score=int(data.get("max_score", 100)),
        )
    raise ValueError(f"unknown lesson content type {kind!r}")
