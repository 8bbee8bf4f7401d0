"""Quiz attempt submission, eligibility, history and analytics endpoints.

Rejections from the attempt gate surface as 400 with ``code`` set to
``attempts_exhausted`` or ``cooldown_active`` and the wait or remaining
count in ``meta``.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field

from courseflow.api.dependencies import CurrentUser, RequestRepos
from courseflow.models.assessment import QuizAttempt, RetakeStatus
from courseflow.services import attempt_gate, quiz_analytics
from courseflow.services.attempt_gate import QuizSubmission

router = APIRouter(prefix="/v1", tags=["quizzes"])


class AnswerIn(BaseModel):
    question_index: int
    answer: str | None = None


class SubmissionIn(BaseModel):
    answers: list[AnswerIn]
    time_spent: int = Field(default=0, ge=0)
    started_at: int | None = None


class AnswerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_index: int
    answer: str | None
    is_correct: bool
    points: int


class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lesson_id: UUID
    course_id: UUID
    attempt_number: int
    answers: list[AnswerOut]
    score: int
    total_points: int
    percentage: float
    correct: int
    incorrect: int
    unanswered: int
    time_spent: int
    started_at: int | None
    submitted_at: int

    @staticmethod
    def of(attempt: QuizAttempt) -> AttemptOut:
        return AttemptOut.model_validate(attempt)


class RetakeStatusOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attempts_used: int
    remaining_attempts: int | None
    can_retake: bool
    next_attempt_available_at: int | None
    retry_after_seconds: int
    reason: str | None

    @staticmethod
    def of(retake: RetakeStatus) -> RetakeStatusOut:
        return RetakeStatusOut.model_validate(retake)


class SubmitOut(BaseModel):
    attempt: AttemptOut
    passed: bool
    eligibility: RetakeStatusOut


class HistoryOut(BaseModel):
    attempts: list[AttemptOut]
    best_score: float
    average_score: float
    last_score: float
    eligibility: RetakeStatusOut


class AttemptPageOut(BaseModel):
    items: list[AttemptOut]
    total: int
    page: int
    limit: int


class QuestionStatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_index: int
    question: str
    correct_count: int
    incorrect_count: int
    unanswered_count: int
    correct_rate: float
    difficulty: float


class BucketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    range: str
    count: int


class DailyAttemptsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: str
    count: int
    average_score: float


class AnalyticsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    total_attempts: int
    total_students: int
    average_score: float
    average_time: float
    passing_score: int
    passing_rate: float
    question_stats: list[QuestionStatsOut]
    score_distribution: list[BucketOut]
    time_distribution: list[BucketOut]
    attempts_over_time: list[DailyAttemptsOut]


@router.post(
    "/lessons/{lesson_id}/attempts",
    response_model=SubmitOut,
    status_code=status.HTTP_201_CREATED,
)
async def submit_attempt(
    lesson_id: UUID, payload: SubmissionIn, principal: CurrentUser, repos: RequestRepos
) -> SubmitOut:
    submission = QuizSubmission(
        answers=[(a.question_index, a.answer) for a in payload.answers],
        time_spent=payload.time_spent,
        started_at=payload.started_at,
    )
    result = await attempt_gate.submit(repos, principal, lesson_id, submission)
    return SubmitOut(
        attempt=AttemptOut.of(result.attempt),
        passed=result.passed,
        eligibility=RetakeStatusOut.of(result.status),
    )


@router.get("/lessons/{lesson_id}/attempts", response_model=HistoryOut)
async def attempt_history(
    lesson_id: UUID, principal: CurrentUser, repos: RequestRepos
) -> HistoryOut:
    result = await attempt_gate.history(repos, principal, lesson_id)
    return HistoryOut(
        attempts=[AttemptOut.of(a) for a in result.attempts],
        best_score=result.best_score,
        average_score=result.average_score,
        last_score=result.last_score,
        eligibility=RetakeStatusOut.of(result.status),
    )


@router.get("/lessons/{lesson_id}/attempts/eligibility", response_model=RetakeStatusOut)
async def attempt_eligibility(
    lesson_id: UUID, principal: CurrentUser, repos: RequestRepos
) -> RetakeStatusOut:
    return RetakeStatusOut.of(await attempt_gate.can_retake(repos, principal, lesson_id))


@router.get("/lessons/{lesson_id}/analytics", response_model=AnalyticsOut)
async def lesson_analytics(
    lesson_id: UUID, principal: CurrentUser, repos: RequestRepos
) -> AnalyticsOut:
    result = await quiz_analytics.get_quiz_analytics(repos, principal, lesson_id)
    return AnalyticsOut.model_validate(result)


@router.get("/attempts", response_model=AttemptPageOut)
async def my_attempts(
    principal: CurrentUser,
    repos: RequestRepos,
    course_id: UUID | None = None,
    page: int = Query(default=1),
    limit: int = Query(default=20),
) -> AttemptPageOut:
    items, total = await attempt_gate.list_student_attempts(
        repos, principal, course_id=course_id, page=page, limit=limit
    )
    return AttemptPageOut(
        items=[AttemptOut.of(a) for a in items], total=total, page=page, limit=limit
    )


@router.get("/attempts/{attempt_id}", response_model=AttemptOut)
async def get_attempt(
    attempt_id: UUID, principal: CurrentUser, repos: RequestRepos
) -> AttemptOut:
    return AttemptOut.of(await attempt_gate.get_attempt(repos, principal, attempt_id))
