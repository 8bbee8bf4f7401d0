"""Course-level progress recomputation and the one-time completion transition.

Enrollment states: in_progress -> completed.  ``completed`` is terminal
for the flag; progress is still refreshed afterwards.  Progress is always
derived from the completed-lesson count, never incremented.
"""

from __future__ import annotations

import dataclasses
import logging
from uuid import UUID

from courseflow.core.errors import NotFoundError
from courseflow.core.metrics import COURSE_COMPLETIONS
from courseflow.models.progress import Enrollment
from courseflow.repos.registry import Repos
from courseflow.services import certificate_issuer
from courseflow.services.access import utc_now

logger = logging.getLogger(__name__)


def progress_percent(completed: int, total: int) -> int:
    """round_half_up(100 * completed / total) clamped to [0, 100].

    Integer arithmetic, so 1 of 3 is 33, 1 of 8 (12.5) is 13 and 2 of 3
    is 67.  A course without lessons reports 0.
    """
    if total <= 0:
        return 0
    value = (200 * completed + total) // (2 * total)
    return max(0, min(100, value))


async def recompute(repos: Repos, student_id: UUID, course_id: UUID) -> Enrollment:
    """Refresh the enrollment's progress and fire completion at most once.

    Safe to call repeatedly: with no new completions the stored state is
    unchanged.  Only the caller whose conditional update flips
    ``is_completed`` hands the enrollment to the certificate issuer.
    """
    enrollment = await repos.progress.get_enrollment(student_id, course_id)
    if enrollment is None:
        raise NotFoundError("enrollment not found")

    completed = await repos.progress.count_completed(student_id, course_id)
    total = await repos.content.count_course_lessons(course_id)
    progress = progress_percent(completed, total)

    await repos.progress.set_progress(enrollment.id, progress)
    enrollment = dataclasses.replace(enrollment, progress=progress)

    if progress >= 100 and not enrollment.is_completed:
        now = utc_now()
        if await repos.progress.mark_completed(enrollment.id, now):
            COURSE_COMPLETIONS.inc()
            logger.info(
                "Course completed  student_id=%s course_id=%s",
                student_id,
                course_id,
                extra={
                    "student_id": str(student_id),
                    "course_id": str(course_id),
                    "enrollment_id": str(enrollment.id),
                },
            )
            enrollment = dataclasses.replace(enrollment, is_completed=True, completed_at=now)
            certificate = await certificate_issuer.issue_if_eligible(repos, enrollment)
            if certificate is not None:
                enrollment = dataclasses.replace(
                    enrollment, certificate_issued=True, certificate_url=certificate.url
                )
    return enrollment
