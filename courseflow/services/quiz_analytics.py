"""Read-only quiz statistics, recomputed from the full attempt history.

Nothing here is maintained incrementally: ``compute_quiz_analytics`` is a
pure function of the lesson and its attempts, so there are no counters to
drift out of sync.
"""

from __future__ import annotations

import datetime
from collections import defaultdict
from dataclasses import dataclass
from uuid import UUID

from courseflow.core.errors import ValidationError
from courseflow.models.assessment import QuizAttempt
from courseflow.models.course import Lesson
from courseflow.models.principal import Principal
from courseflow.repos.registry import Repos
from courseflow.services.access import check_owner_or_admin, load_course, load_lesson

# (label, exclusive lower bound, inclusive upper bound); the first bucket
# also takes its lower bound.
SCORE_BUCKETS = (
    ("0-50", None, 50),
    ("51-70", 50, 70),
    ("71-85", 70, 85),
    ("86-100", 85, 100),
)
TIME_BUCKETS = (
    ("0-5 min", None, 300),
    ("5-10 min", 300, 600),
    ("10-15 min", 600, 900),
    ("15+ min", 900, None),
)


@dataclass(frozen=True, slots=True)
class QuestionStats:
    question_index: int
    question: str
    correct_count: int
    incorrect_count: int
    unanswered_count: int
    correct_rate: float
    difficulty: float


@dataclass(frozen=True, slots=True)
class Bucket:
    range: str
    count: int


@dataclass(frozen=True, slots=True)
class DailyAttempts:
    date: str  # YYYY-MM-DD, UTC
    count: int
    average_score: float


@dataclass(frozen=True, slots=True)
class QuizAnalytics:
    lesson_id: UUID
    total_attempts: int
    total_students: int
    average_score: float
    average_time: float
    passing_score: int
    passing_rate: float
    question_stats: list[QuestionStats]
    score_distribution: list[Bucket]
    time_distribution: list[Bucket]
    attempts_over_time: list[DailyAttempts]


def _bucketize(values: list[float], buckets) -> list[Bucket]:
    result = []
    for label, low, high in buckets:
        count = sum(
            1
            for v in values
            if (low is None or v > low) and (high is None or v <= high)
        )
        result.append(Bucket(range=label, count=count))
    return result


def _rate(part: int, whole: int) -> float:
    return round(part * 100 / whole, 2) if whole else 0.0


def compute_quiz_analytics(lesson: Lesson, attempts: list[QuizAttempt]) -> QuizAnalytics:
    quiz = lesson.quiz
    if quiz is None:
        raise ValidationError("lesson is not a quiz", meta={"type": lesson.type})

    total = len(attempts)
    scores = [a.percentage for a in attempts]
    passing_score = quiz.settings.passing_score

    question_stats = []
    for index, question in enumerate(quiz.questions):
        correct = incorrect = unanswered = 0
        for attempt in attempts:
            answer = next((a for a in attempt.answers if a.question_index == index), None)
            if answer is None or answer.answer is None:
                unanswered += 1
            elif answer.is_correct:
                correct += 1
            else:
                incorrect += 1
        correct_rate = _rate(correct, total)
        question_stats.append(
            QuestionStats(
                question_index=index,
                question=question.question,
                correct_count=correct,
                incorrect_count=incorrect,
                unanswered_count=unanswered,
                correct_rate=correct_rate,
                difficulty=round(100 - correct_rate, 2),
            )
        )

    by_date: dict[str, list[float]] = defaultdict(list)
    for attempt in attempts:
        day = datetime.datetime.fromtimestamp(attempt.submitted_at, datetime.UTC).date()
        by_date[day.isoformat()].append(attempt.percentage)

    return QuizAnalytics(
        lesson_id=lesson.id,
        total_attempts=total,
        total_students=len({a.student_id for a in attempts}),
        average_score=round(sum(scores) / total, 2) if total else 0.0,
        average_time=round(sum(a.time_spent for a in attempts) / total, 2) if total else 0.0,
        passing_score=passing_score,
        passing_rate=_rate(sum(1 for s in scores if s >= passing_score), total),
        question_stats=question_stats,
        score_distribution=_bucketize(scores, SCORE_BUCKETS),
        time_distribution=_bucketize([a.time_spent for a in attempts], TIME_BUCKETS),
        attempts_over_time=[
            DailyAttempts(
                date=day,
                count=len(day_scores),
                average_score=round(sum(day_scores) / len(day_scores), 2),
            )
            for day, day_scores in sorted(by_date.items())
        ],
    )


async def get_quiz_analytics(repos: Repos, actor: Principal, lesson_id: UUID) -> QuizAnalytics:
    """Analytics for one quiz lesson; course owner or admin only."""
    lesson = await load_lesson(repos, lesson_id)
    check_owner_or_admin(actor, await load_course(repos, lesson.course_id))
    attempts = await repos.attempts.list_for_lesson(lesson_id)
    return compute_quiz_analytics(lesson, attempts)
