from __future__ import annotations

import datetime
from dataclasses import dataclass
from uuid import UUID, uuid4

SHORT_SUFFIX = 8
FULL_SUFFIX = 32


@dataclass(frozen=True, slots=True)
class Certificate:
    """Issued certificate for one completed enrollment."""

    id: UUID
    enrollment_id: UUID
    student_id: UUID
    course_id: UUID
    certificate_number: str
    url: str
    issued_at: int

    @staticmethod
    def new(
        *,
        enrollment_id: UUID,
        student_id: UUID,
        course_id: UUID,
        url: str,
        issued_at: int,
        certificate_number: str | None = None,
    ) -> Certificate:
        return Certificate(
            id=uuid4(),
            enrollment_id=enrollment_id,
            student_id=student_id,
            course_id=course_id,
            certificate_number=certificate_number
            or certificate_number_for(enrollment_id, issued_at),
            url=url,
            issued_at=issued_at,
        )


def certificate_number_for(
    enrollment_id: UUID, issued_at: int, *, suffix_length: int = SHORT_SUFFIX
) -> str:
    """CF-<year>-<last ``suffix_length`` hex digits of the enrollment id>.

    The short form can repeat across enrollments; the FULL_SUFFIX form is
    the whole enrollment id and cannot.
    """
    year = datetime.datetime.fromtimestamp(issued_at, datetime.UTC).year
    return f"CF-{year}-{enrollment_id.hex[-suffix_length:].upper()}"


@dataclass(frozen=True, slots=True)
class RenderRequest:
    certificate_number: str
    student_name: str
    course_title: str
    completion_date: datetime.date


@dataclass(frozen=True, slots=True)
class RenderedCertificate:
    artifact: bytes | None
    url: str
