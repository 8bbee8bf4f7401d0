from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class AttemptAnswer:
    question_index: int
    answer: str | None
    is_correct: bool
    points: int


@dataclass(frozen=True, slots=True)
class QuizAttempt:
    """One graded quiz submission.  Append-only."""

    id: UUID
    lesson_id: UUID
    course_id: UUID
    student_id: UUID
    attempt_number: int
    answers: tuple[AttemptAnswer, ...]
    score: int
    total_points: int
    percentage: float
    correct: int
    incorrect: int
    unanswered: int
    time_spent: int
    submitted_at: int
    started_at: int | None = None

    @staticmethod
    def new(
        *,
        lesson_id: UUID,
        course_id: UUID,
        student_id: UUID,
        attempt_number: int,
        answers: tuple[AttemptAnswer, ...],
        total_points: int,
        time_spent: int,
        submitted_at: int,
        started_at: int | None = None,
    ) -> QuizAttempt:
        score = sum(a.points for a in answers if a.is_correct)
        correct = sum(1 for a in answers if a.is_correct)
        unanswered = sum(1 for a in answers if a.answer is None)
        percentage = round(score * 100 / total_points, 2) if total_points else 0.0
        return QuizAttempt(
            id=uuid4(),
            lesson_id=lesson_id,
            course_id=course_id,
            student_id=student_id,
            attempt_number=attempt_number,
            answers=answers,
            score=score,
            total_points=total_points,
            percentage=percentage,
            correct=correct,
            incorrect=len(answers) - correct - unanswered,
            unanswered=unanswered,
            time_spent=time_spent,
            submitted_at=submitted_at,
            started_at=started_at,
        )


@dataclass(frozen=True, slots=True)
class RetakeStatus:
    """Gate decision shared by quiz submission and the eligibility read."""

    attempts_used: int
    remaining_attempts: int | None  # None when the quiz has no attempt cap
    can_retake: bool
    next_attempt_available_at: int | None = None
    retry_after_seconds: int = 0
    reason: str | None = None  # exhausted|cooldown
