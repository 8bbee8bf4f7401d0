"""At-most-once certificate issuance for completed enrollments.

The claim is one conditional write (certificate_issued false -> true), so
concurrent completion triggers cannot both pass the guard.  Rendering is
an out-of-band collaborator.  When the render or the store step fails,
the failure is logged and counted, the claim is released, and a
reconciliation task is queued.  The failure never propagates into the
completion transition that triggered it; ``reconcile`` (run by the
worker, on demand and on a timer) retries later.

Numbers use the last 8 hex digits of the enrollment id.  When another
enrollment already holds that number, the whole id is used instead.
"""

from __future__ import annotations

import datetime
import logging
from typing import Protocol
from uuid import UUID

import httpx

from courseflow.core.config import SETTINGS
from courseflow.core.metrics import (
    CERTIFICATE_RENDER_FAILURES,
    CERTIFICATE_STORE_FAILURES,
    CERTIFICATES_ISSUED,
)
from courseflow.models.certificate import (
    FULL_SUFFIX,
    Certificate,
    RenderedCertificate,
    RenderRequest,
    certificate_number_for,
)
from courseflow.models.principal import Principal
from courseflow.models.progress import Enrollment
from courseflow.repos.registry import Repos
from courseflow.services.access import utc_now
from courseflow.services.task_queue import TaskQueue, task_queue

logger = logging.getLogger(__name__)

RECONCILIATION_QUEUE = "certificate_reconciliation"


class CertificateRenderError(Exception):
    """The render collaborator could not produce a certificate."""


class CertificateRenderer(Protocol):
    async def render(self, request: RenderRequest) -> RenderedCertificate: ...


class HttpCertificateRenderer:
    """POSTs the render request to an external rendering service.

    The service answers ``{"url": ...}`` and may include the artifact
    location only; the PDF bytes themselves stay with the renderer.
    """

    def __init__(self, base_url: str, *, timeout: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def render(self, request: RenderRequest) -> RenderedCertificate:
        payload = {
            "certificate_number": request.certificate_number,
            "student_name": request.student_name,
            "course_title": request.course_title,
            "completion_date": request.completion_date.isoformat(),
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(f"{self._base_url}/render", json=payload)
        except httpx.TimeoutException as e:
            raise CertificateRenderError("renderer timed out") from e
        except httpx.RequestError as e:
            raise CertificateRenderError(f"renderer request failed: {e}") from e

        if response.status_code != httpx.codes.OK:
            raise CertificateRenderError(f"renderer returned {response.status_code}")
        data = response.json()
        if not data.get("url"):
            raise CertificateRenderError("renderer response has no url")
        return RenderedCertificate(artifact=None, url=data["url"])


class LinkCertificateRenderer:
    """Produces a verification link only, for deployments without a renderer."""

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

    async def render(self, request: RenderRequest) -> RenderedCertificate:
        return RenderedCertificate(
            artifact=None, url=f"{self._base_url}/{request.certificate_number}/verify"
        )


if SETTINGS.certificate_renderer_url:
    renderer: CertificateRenderer = HttpCertificateRenderer(
        SETTINGS.certificate_renderer_url
    )
else:
    renderer = LinkCertificateRenderer(SETTINGS.certificate_base_url)

queue: TaskQueue = task_queue


async def issue_if_eligible(
    repos: Repos,
    enrollment: Enrollment,
    *,
    schedule_retry: bool = True,
) -> Certificate | None:
    """Issue the certificate for ``enrollment`` unless it already exists or
    is not due.  Returns the new Certificate, or None when nothing was
    issued (not eligible, lost the claim race, or the render or store step
    failed)."""
    if enrollment.certificate_issued or not enrollment.is_completed:
        return None
    course = await repos.content.get_course(enrollment.course_id)
    if course is None or not course.certificate:
        return None

    if not await repos.progress.claim_certificate(enrollment.id):
        logger.info(
            "Certificate already claimed  enrollment_id=%s",
            enrollment.id,
            extra=_log_ids(enrollment),
        )
        return None

    now = utc_now()
    completed_at = enrollment.completed_at or now
    request = RenderRequest(
        certificate_number=await _available_number(repos, enrollment.id, now),
        student_name=enrollment.student_name,
        course_title=course.title,
        completion_date=datetime.datetime.fromtimestamp(completed_at, datetime.UTC).date(),
    )

    try:
        rendered = await renderer.render(request)
    except Exception:
        logger.exception(
            "Certificate render failed  enrollment_id=%s course_id=%s",
            enrollment.id,
            enrollment.course_id,
            extra=_log_ids(enrollment),
        )
        CERTIFICATE_RENDER_FAILURES.inc()
        await _release(repos, enrollment, schedule_retry=schedule_retry)
        return None

    certificate = Certificate.new(
        enrollment_id=enrollment.id,
        student_id=enrollment.student_id,
        course_id=enrollment.course_id,
        url=rendered.url,
        issued_at=now,
        certificate_number=request.certificate_number,
    )
    try:
        await repos.certificates.add(certificate)
    except Exception:
        logger.exception(
            "Certificate store failed  enrollment_id=%s number=%s",
            enrollment.id,
            certificate.certificate_number,
            extra=_log_ids(enrollment),
        )
        CERTIFICATE_STORE_FAILURES.inc()
        await _release(repos, enrollment, schedule_retry=schedule_retry)
        return None

    await repos.progress.set_certificate_url(enrollment.id, rendered.url)
    CERTIFICATES_ISSUED.inc()
    logger.info(
        "Certificate issued  enrollment_id=%s number=%s",
        enrollment.id,
        certificate.certificate_number,
        extra=_log_ids(enrollment),
    )
    return certificate


def _log_ids(enrollment: Enrollment) -> dict[str, str]:
    return {
        "enrollment_id": str(enrollment.id),
        "course_id": str(enrollment.course_id),
        "student_id": str(enrollment.student_id),
    }


async def _available_number(repos: Repos, enrollment_id: UUID, issued_at: int) -> str:
    """The short number, or the full-id number when another enrollment
    already holds the short one."""
    number = certificate_number_for(enrollment_id, issued_at)
    holder = await repos.certificates.get_by_number(number)
    if holder is not None and holder.enrollment_id != enrollment_id:
        return certificate_number_for(enrollment_id, issued_at, suffix_length=FULL_SUFFIX)
    return number


async def _release(repos: Repos, enrollment: Enrollment, *, schedule_retry: bool) -> None:
    await repos.progress.release_certificate(enrollment.id)
    if schedule_retry:
        await _schedule_reconciliation(enrollment.id)


async def _schedule_reconciliation(enrollment_id: UUID) -> None:
    try:
        await queue.enqueue(RECONCILIATION_QUEUE, {"enrollment_id": str(enrollment_id)})
    except Exception:
        # The worker's timed sweep still finds the enrollment.
        logger.exception(
            "Could not enqueue certificate reconciliation  enrollment_id=%s",
            enrollment_id,
            extra={"enrollment_id": str(enrollment_id)},
        )


async def reconcile(repos: Repos, limit: int = SETTINGS.reconcile_batch_size) -> int:
    """Retry issuance for completed, certifiable, still-uncertified
    enrollments.  Returns how many certificates were issued."""
    issued = 0
    pending = await repos.progress.list_pending_certificates(limit)
    for enrollment in pending:
        if await issue_if_eligible(repos, enrollment, schedule_retry=False):
            issued += 1
    logger.info("Certificate reconciliation  pending=%d issued=%d", len(pending), issued)
    return issued


async def verify(repos: Repos, certificate_number: str) -> dict:
    """Exact lookup of a stored certificate number."""
    certificate = await repos.certificates.get_by_number(certificate_number.strip().upper())
    if certificate is None:
        return {"valid": False}

    enrollment = await repos.progress.get_enrollment_by_id(certificate.enrollment_id)
    course = await repos.content.get_course(certificate.course_id)
    return {
        "valid": True,
        "certificate_number": certificate.certificate_number,
        "student_name": enrollment.student_name if enrollment else "",
        "course_title": course.title if course else "",
        "issued_at": certificate.issued_at,
    }


async def list_for_student(repos: Repos, actor: Principal) -> list[Certificate]:
    return await repos.certificates.list_for_student(actor.user_id)
