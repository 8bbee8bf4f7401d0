"""Tests for quiz analytics aggregation."""

from __future__ import annotations

import asyncio
import uuid

import pytest

from courseflow.core.errors import AuthorizationError, ValidationError
from courseflow.models.assessment import QuizAttempt
from courseflow.repos.registry import Repos
from courseflow.services import attempt_gate, quiz_analytics
from tests.conftest import instructor, principal, seed_course, seed_quiz

DAY_ONE = 1_760_000_000  # 2025-10-09 UTC
DAY_TWO = DAY_ONE + 86_400


def _attempt(quiz, student_id, answers, *, number=1, time_spent=0, submitted_at=DAY_ONE):
    return QuizAttempt.new(
        lesson_id=quiz.id,
        course_id=quiz.course_id,
        student_id=student_id,
        attempt_number=number,
        answers=attempt_gate.grade(quiz.quiz, answers),
        total_points=quiz.quiz.total_points,
        time_spent=time_spent,
        submitted_at=submitted_at,
    )


def test_empty_history_has_zeroed_buckets() -> None:
    _course, sections, _lessons = seed_course(instructor(), lessons_per_section=0)
    quiz = seed_quiz(sections[0])

    result = quiz_analytics.compute_quiz_analytics(quiz, [])

    assert result.total_attempts == 0
    assert result.total_students == 0
    assert result.average_score == 0.0
    assert result.passing_rate == 0.0
    assert [(b.range, b.count) for b in result.score_distribution] == [
        ("0-50", 0),
        ("51-70", 0),
        ("71-85", 0),
        ("86-100", 0),
    ]
    assert [b.range for b in result.time_distribution] == [
        "0-5 min",
        "5-10 min",
        "10-15 min",
        "15+ min",
    ]
    assert result.attempts_over_time == []
    assert [q.correct_count for q in result.question_stats] == [0, 0]


def test_populated_history() -> None:
    _course, sections, _lessons = seed_course(instructor(), lessons_per_section=0)
    quiz = seed_quiz(sections[0])
    ada, bob = uuid.uuid4(), uuid.uuid4()
    attempts = [
        _attempt(quiz, ada, [(0, "b"), (1, "x")], time_spent=120),
        _attempt(quiz, ada, [(0, "b"), (1, "y")], number=2, time_spent=300,
                 submitted_at=DAY_TWO),
        _attempt(quiz, bob, [(0, "a")], time_spent=1200, submitted_at=DAY_TWO),
    ]

    result = quiz_analytics.compute_quiz_analytics(quiz, attempts)

    assert result.total_attempts == 3
    assert result.total_students == 2
    assert result.average_score == 50.0
    assert result.average_time == 540.0
    assert result.passing_score == 60
    assert result.passing_rate == 33.33
    assert [(b.range, b.count) for b in result.score_distribution] == [
        ("0-50", 2),
        ("51-70", 0),
        ("71-85", 0),
        ("86-100", 1),
    ]
    assert [(b.range, b.count) for b in result.time_distribution] == [
        ("0-5 min", 2),
        ("5-10 min", 0),
        ("10-15 min", 0),
        ("15+ min", 1),
    ]
    first, second = result.question_stats
    assert (first.correct_count, first.incorrect_count, first.unanswered_count) == (2, 1, 0)
    assert first.correct_rate == 66.67
    assert first.difficulty == 33.33
    assert (second.correct_count, second.incorrect_count, second.unanswered_count) == (1, 1, 1)
    assert [(d.date, d.count, d.average_score) for d in result.attempts_over_time] == [
        ("2025-10-09", 1, 50.0),
        ("2025-10-10", 2, 50.0),
    ]


def test_non_quiz_lesson_is_rejected() -> None:
    _course, _sections, lessons = seed_course(instructor(), lessons_per_section=1)

    with pytest.raises(ValidationError):
        quiz_analytics.compute_quiz_analytics(lessons[0][0], [])


def test_owner_reads_analytics_from_stored_attempts(repos: Repos) -> None:
    owner = instructor()
    _course, sections, _lessons = seed_course(owner, lessons_per_section=0)
    quiz = seed_quiz(sections[0])

    async def _run():
        await repos.attempts.add(_attempt(quiz, uuid.uuid4(), [(0, "b"), (1, "y")]))
        return await quiz_analytics.get_quiz_analytics(repos, owner, quiz.id)

    result = asyncio.run(_run())

    assert result.lesson_id == quiz.id
    assert result.total_attempts == 1
    assert result.passing_rate == 100.0


def test_students_cannot_read_analytics(repos: Repos) -> None:
    _course, sections, _lessons = seed_course(instructor(), lessons_per_section=0)
    quiz = seed_quiz(sections[0])

    with pytest.raises(AuthorizationError):
        asyncio.run(quiz_analytics.get_quiz_analytics(repos, principal(), quiz.id))
