from __future__ import annotations

import asyncio
import sys
import uuid
from pathlib import Path
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from courseflow.main import app
from courseflow.models.course import Course, Lesson, LessonDraft, Section
from courseflow.models.lesson_content import (
    QuizContent,
    QuizQuestion,
    QuizSettings,
    TextContent,
)
from courseflow.models.principal import Principal
from courseflow.models.progress import Enrollment
from courseflow.repos.memory_store import STORE
from courseflow.repos.registry import Repos, memory_repos
from courseflow.services import certificate_issuer, token_service
from courseflow.services.task_queue import InMemoryTaskQueue, task_queue

# Ensure repo root is on sys.path so `import courseflow` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_store() -> None:
    """Clear the in-memory store (and its locks) between tests."""
    STORE.clear()


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def fresh_reconciliation_queue(monkeypatch: pytest.MonkeyPatch) -> InMemoryTaskQueue:
    """The issuer enqueues into a per-test queue, never into Redis."""
    queue = InMemoryTaskQueue()
    monkeypatch.setattr(certificate_issuer, "queue", queue)
    return queue


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def repos() -> Repos:
    return memory_repos()


def mint_token(
    user_id: UUID | None = None,
    roles: list[str] | None = None,
    name: str = "Test Learner",
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(
        sub=str(user_id or uuid.uuid4()), roles=roles, name=name
    )


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def principal(
    user_id: UUID | None = None, roles: set[str] | None = None, name: str = "Ada"
) -> Principal:
    return Principal(
        user_id=user_id or uuid.uuid4(),
        roles=frozenset(roles or {"student"}),
        name=name,
    )


def instructor() -> Principal:
    return principal(roles={"instructor"}, name="Grace")


def text_draft(title: str = "Lesson") -> LessonDraft:
    return LessonDraft(title=title, content=TextContent(body=f"{title} body"))


def quiz_draft(
    title: str = "Quiz",
    *,
    max_attempts: int | None = None,
    cooldown_seconds: int = 0,
    passing_score: int = 60,
) -> LessonDraft:
    """Two questions: 'b' and 'y' are correct, one point each."""
    return LessonDraft(
        title=title,
        content=QuizContent(
            questions=(
                QuizQuestion(question="Q1", options=("a", "b", "c"), correct_answer="b"),
                QuizQuestion(question="Q2", options=("x", "y"), correct_answer="y"),
            ),
            settings=QuizSettings(
                max_attempts=max_attempts,
                cooldown_seconds=cooldown_seconds,
                passing_score=passing_score,
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Course fixtures built straight into the in-memory store
# ---------------------------------------------------------------------------


def seed_course(
    owner: Principal,
    *,
    sections: int = 1,
    lessons_per_section: int = 3,
    certificate: bool = False,
) -> tuple[Course, list[Section], list[list[Lesson]]]:
    """A course with dense sections and lessons, titled S1.., L1.. per section."""

    async def _seed():
        repos = memory_repos()
        course = Course.new(
            slug=f"course-{uuid.uuid4().hex[:8]}",
            title="Async Python",
            owner_id=owner.user_id,
            certificate=certificate,
            status="published",
        )
        await repos.content.add_course(course)
        section_rows: list[Section] = []
        lesson_rows: list[list[Lesson]] = []
        for s in range(1, sections + 1):
            section = Section.new(course_id=course.id, order=s, title=f"S{s}")
            await repos.content.add_section(section)
            section_rows.append(section)
            placed = []
            for n in range(1, lessons_per_section + 1):
                lesson = Lesson.place(text_draft(f"L{n}"), section=section, order=n)
                await repos.content.add_lesson(lesson)
                placed.append(lesson)
            lesson_rows.append(placed)
        return course, section_rows, lesson_rows

    return asyncio.run(_seed())


def seed_enrollment(student: Principal, course: Course) -> Enrollment:
    async def _seed():
        enrollment = Enrollment.new(
            student_id=student.user_id,
            course_id=course.id,
            student_name=student.name,
            enrolled_at=1_700_000_000,
        )
        await memory_repos().progress.add_enrollment(enrollment)
        return enrollment

    return asyncio.run(_seed())


def orders(items) -> list[tuple[str, int]]:
    """(title, order) pairs, in list order."""
    return [(item.title, item.order) for item in items]


def seed_quiz(section: Section, draft: LessonDraft | None = None) -> Lesson:
    """Append a quiz lesson to ``section`` (two questions unless ``draft`` says otherwise)."""

    async def _seed():
        repos = memory_repos()
        count = len(await repos.content.list_lessons(section.id))
        lesson = Lesson.place(draft or quiz_draft(), section=section, order=count + 1)
        await repos.content.add_lesson(lesson)
        return lesson

    return asyncio.run(_seed())
