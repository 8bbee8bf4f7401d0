"""Quiz attempt gating, server-side grading, and attempt history.

Submission and the eligibility read share ``retake_status``, so the
write path can never accept what the read path reported as blocked (or
the reverse).  Attempt numbers come from max(existing) + 1; the storage
uniqueness constraint on (lesson, student, attempt_number) settles the
race between two concurrent submits, and the loser retries once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from courseflow.core.errors import (
    AuthorizationError,
    BusinessLogicError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from courseflow.core.metrics import QUIZ_ATTEMPTS
from courseflow.models.assessment import AttemptAnswer, QuizAttempt, RetakeStatus
from courseflow.models.course import Lesson
from courseflow.models.lesson_content import QuizContent, QuizSettings
from courseflow.models.principal import Principal
from courseflow.repos.registry import Repos
from courseflow.services.access import load_lesson, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QuizSubmission:
    answers: list[tuple[int, str | None]]  # (question_index, chosen option)
    time_spent: int = 0
    started_at: int | None = None


@dataclass(frozen=True, slots=True)
class SubmitResult:
    attempt: QuizAttempt
    status: RetakeStatus  # gate state after this attempt
    passed: bool


@dataclass(frozen=True, slots=True)
class AttemptHistory:
    attempts: list[QuizAttempt]
    best_score: float
    average_score: float
    last_score: float
    status: RetakeStatus


def retake_status(
    settings: QuizSettings, attempts: list[QuizAttempt], now: int
) -> RetakeStatus:
    """The single gate predicate.  ``attempts`` are this student's attempts
    at this quiz, in attempt order."""
    used = len(attempts)
    remaining = None
    if settings.max_attempts is not None:
        remaining = max(0, settings.max_attempts - used)
        if remaining == 0:
            return RetakeStatus(
                attempts_used=used,
                remaining_attempts=0,
                can_retake=False,
                reason="exhausted",
            )

    if attempts and settings.cooldown_seconds > 0:
        available_at = attempts[-1].submitted_at + settings.cooldown_seconds
        if available_at > now:
            return RetakeStatus(
                attempts_used=used,
                remaining_attempts=remaining,
                can_retake=False,
                next_attempt_available_at=available_at,
                retry_after_seconds=available_at - now,
                reason="cooldown",
            )

    return RetakeStatus(attempts_used=used, remaining_attempts=remaining, can_retake=True)


def grade(quiz: QuizContent, answers: list[tuple[int, str | None]]) -> tuple[AttemptAnswer, ...]:
    """Grade against the stored questions; one AttemptAnswer per question."""
    chosen: dict[int, str | None] = {}
    for index, answer in answers:
        if not 0 <= index < len(quiz.questions):
            raise ValidationError(
                "question index out of range",
                meta={"question_index": index, "question_count": len(quiz.questions)},
            )
        if index in chosen:
            raise ValidationError(
                "question answered twice", meta={"question_index": index}
            )
        chosen[index] = answer if answer not in ("", None) else None

    graded = []
    for index, question in enumerate(quiz.questions):
        answer = chosen.get(index)
        is_correct = answer is not None and answer == question.correct_answer
        graded.append(
            AttemptAnswer(
                question_index=index,
                answer=answer,
                is_correct=is_correct,
                points=question.points if is_correct else 0,
            )
        )
    return tuple(graded)


async def _load_quiz(repos: Repos, lesson_id: UUID) -> tuple[Lesson, QuizContent]:
    lesson = await load_lesson(repos, lesson_id)
    if lesson.quiz is None:
        raise ValidationError("lesson is not a quiz", meta={"type": lesson.type})
    return lesson, lesson.quiz


async def _require_enrolled(repos: Repos, actor: Principal, lesson: Lesson) -> None:
    enrollment = await repos.progress.get_enrollment(actor.user_id, lesson.course_id)
    if enrollment is None or not enrollment.is_active:
        logger.warning(
            "Quiz access denied: user=%s not enrolled in course=%s",
            actor.user_id,
            lesson.course_id,
        )
        raise AuthorizationError("you are not enrolled in this course")


def _reject(status: RetakeStatus, settings: QuizSettings) -> BusinessLogicError:
    if status.reason == "exhausted":
        QUIZ_ATTEMPTS.labels(outcome="exhausted").inc()
        return BusinessLogicError(
            f"no attempts left (max {settings.max_attempts})",
            code="attempts_exhausted",
            meta={"remaining_attempts": 0},
        )
    QUIZ_ATTEMPTS.labels(outcome="cooldown").inc()
    return BusinessLogicError(
        f"please wait {status.retry_after_seconds} seconds before retrying",
        code="cooldown_active",
        meta={
            "retry_after_seconds": status.retry_after_seconds,
            "next_attempt_available_at": status.next_attempt_available_at,
        },
    )


async def submit(
    repos: Repos, actor: Principal, lesson_id: UUID, submission: QuizSubmission
) -> SubmitResult:
    lesson, quiz = await _load_quiz(repos, lesson_id)
    await _require_enrolled(repos, actor, lesson)
    if submission.time_spent < 0:
        raise ValidationError("time_spent must be >= 0")
    answers = grade(quiz, submission.answers)
    log_ids = {
        "student_id": str(actor.user_id),
        "course_id": str(lesson.course_id),
        "lesson_id": str(lesson_id),
    }

    for retry in (False, True):
        existing = await repos.attempts.list_for_student_lesson(actor.user_id, lesson_id)
        now = utc_now()
        status = retake_status(quiz.settings, existing, now)
        if not status.can_retake:
            logger.warning(
                "Quiz attempt rejected  user=%s lesson_id=%s reason=%s",
                actor.user_id,
                lesson_id,
                status.reason,
                extra=log_ids,
            )
            raise _reject(status, quiz.settings)

        attempt = QuizAttempt.new(
            lesson_id=lesson_id,
            course_id=lesson.course_id,
            student_id=actor.user_id,
            attempt_number=max((a.attempt_number for a in existing), default=0) + 1,
            answers=answers,
            total_points=quiz.total_points,
            time_spent=submission.time_spent,
            submitted_at=now,
            started_at=submission.started_at,
        )
        try:
            await repos.attempts.add(attempt)
            break
        except ConflictError:
            QUIZ_ATTEMPTS.labels(outcome="conflict").inc()
            if retry:
                raise
            logger.info(
                "Attempt number taken, retrying  user=%s lesson_id=%s number=%d",
                actor.user_id,
                lesson_id,
                attempt.attempt_number,
                extra=log_ids,
            )

    QUIZ_ATTEMPTS.labels(outcome="accepted").inc()
    logger.info(
        "Quiz attempt recorded  user=%s lesson_id=%s number=%d percentage=%.2f",
        actor.user_id,
        lesson_id,
        attempt.attempt_number,
        attempt.percentage,
        extra=log_ids,
    )
    return SubmitResult(
        attempt=attempt,
        status=retake_status(quiz.settings, [*existing, attempt], now),
        passed=attempt.percentage >= quiz.settings.passing_score,
    )


async def can_retake(repos: Repos, actor: Principal, lesson_id: UUID) -> RetakeStatus:
    lesson, quiz = await _load_quiz(repos, lesson_id)
    await _require_enrolled(repos, actor, lesson)
    attempts = await repos.attempts.list_for_student_lesson(actor.user_id, lesson_id)
    return retake_status(quiz.settings, attempts, utc_now())


async def history(repos: Repos, actor: Principal, lesson_id: UUID) -> AttemptHistory:
    lesson, quiz = await _load_quiz(repos, lesson_id)
    await _require_enrolled(repos, actor, lesson)
    attempts = await repos.attempts.list_for_student_lesson(actor.user_id, lesson_id)
    scores = [a.percentage for a in attempts]
    return AttemptHistory(
        attempts=attempts,
        best_score=max(scores, default=0.0),
        average_score=round(sum(scores) / len(scores), 2) if scores else 0.0,
        last_score=scores[-1] if scores else 0.0,
        status=retake_status(quiz.settings, attempts, utc_now()),
    )


async def list_student_attempts(
    repos: Repos,
    actor: Principal,
    *,
    course_id: UUID | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[QuizAttempt], int]:
    """The caller's own attempts, newest first, with the total count."""
    if page < 1 or not 1 <= limit <= 100:
        raise ValidationError("page must be >= 1 and limit within 1..100")
    return await repos.attempts.list_for_student(
        actor.user_id, course_id=course_id, offset=(page - 1) * limit, limit=limit
    )


async def get_attempt(repos: Repos, actor: Principal, attempt_id: UUID) -> QuizAttempt:
    attempt = await repos.attempts.get(attempt_id)
    # Someone else's attempt is reported as missing, not forbidden.
    if attempt is None or attempt.student_id != actor.user_id:
        raise NotFoundError("quiz attempt not found")
    return attempt
