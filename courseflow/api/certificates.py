from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from courseflow.api.dependencies import CurrentUser, RequestRepos, require_role
from courseflow.models.certificate import Certificate
from courseflow.models.principal import Principal
from courseflow.services import certificate_issuer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


class CertificateOut(BaseModel):
    id: str
    enrollment_id: str
    course_id: str
    certificate_number: str
    url: str
    issued_at: int

    @staticmethod
    def of(certificate: Certificate) -> CertificateOut:
        return CertificateOut(
            id=str(certificate.id),
            enrollment_id=str(certificate.enrollment_id),
            course_id=str(certificate.course_id),
            certificate_number=certificate.certificate_number,
            url=certificate.url,
            issued_at=certificate.issued_at,
        )


class VerificationOut(BaseModel):
    valid: bool
    certificate_number: str | None = None
    student_name: str | None = None
    course_title: str | None = None
    issued_at: int | None = None


class ReconcileIn(BaseModel):
    run_now: bool = False


class ReconcileOut(BaseModel):
    queued: bool
    issued: int | None = None


@router.get("", response_model=list[CertificateOut])
async def my_certificates(principal: CurrentUser, repos: RequestRepos) -> list[CertificateOut]:
    certificates = await certificate_issuer.list_for_student(repos, principal)
    return [CertificateOut.of(c) for c in certificates]


@router.get("/{certificate_number}/verify", response_model=VerificationOut)
async def verify_certificate(certificate_number: str, repos: RequestRepos) -> VerificationOut:
    """Public: anyone holding a certificate number may check it."""
    return VerificationOut(**await certificate_issuer.verify(repos, certificate_number))


@router.post(
    "/reconcile",
    response_model=ReconcileOut,
    status_code=status.HTTP_202_ACCEPTED,
)
async def reconcile_certificates(
    principal: Annotated[Principal, Depends(require_role("admin"))],
    repos: RequestRepos,
    payload: ReconcileIn | None = None,
) -> ReconcileOut:
    """Queue a reconciliation sweep for the worker, or run one inline."""
    if payload is not None and payload.run_now:
        issued = await certificate_issuer.reconcile(repos)
        return ReconcileOut(queued=False, issued=issued)

    await certificate_issuer.queue.enqueue(
        certificate_issuer.RECONCILIATION_QUEUE, {"requested_by": str(principal.user_id)}
    )
    logger.info("Certificate reconciliation queued  by=%s", principal.user_id)
    return ReconcileOut(queued=True)
