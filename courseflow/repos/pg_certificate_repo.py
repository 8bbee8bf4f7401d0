"""PostgreSQL implementation of CertificateRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courseflow.core.errors import ConflictError
from courseflow.db.tables import CertificateRow
from courseflow.models.certificate import Certificate


class PgCertificateRepo:
    """Satisfies the CertificateRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, certificate: Certificate) -> None:
        row = CertificateRow(
            id=certificate.id,
            enrollment_id=certificate.enrollment_id,
            student_id=certificate.student_id,
            course_id=certificate.course_id,
            certificate_number=certificate.certificate_number,
            url=certificate.url,
            issued_at=certificate.issued_at,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError:
            raise ConflictError(
                "certificate already stored",
                meta={"certificate_number": certificate.certificate_number},
            ) from None

    async def get_by_number(self, certificate_number: str) -> Certificate | None:
        stmt = select(CertificateRow).where(
            CertificateRow.certificate_number == certificate_number
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_certificate(row)

    async def get_by_enrollment(self, enrollment_id: UUID) -> Certificate | None:
        stmt = select(CertificateRow).where(CertificateRow.enrollment_id == enrollment_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_certificate(row)

    async def list_for_student(self, student_id: UUID) -> list[Certificate]:
        stmt = (
            select(CertificateRow)
            .where(CertificateRow.student_id == student_id)
            .order_by(CertificateRow.issued_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_certificate(r) for r in rows]


def _row_to_certificate(row: CertificateRow) -> Certificate:
    return Certificate(
        id=row.id,
        enrollment_id=row.enrollment_id,
        student_id=row.student_id,
        course_id=row.course_id,
        certificate_number=row.certificate_number,
        url=row.url,
        issued_at=row.issued_at,
    )
