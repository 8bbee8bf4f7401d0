from __future__ import annotations

from typing import Protocol
from uuid import UUID

from courseflow.core.errors import ConflictError
from courseflow.models.certificate import Certificate
from courseflow.repos.memory_store import InMemoryStore


class CertificateRepo(Protocol):
    async def add(self, certificate: Certificate) -> None: ...
    async def get_by_number(self, certificate_number: str) -> Certificate | None: ...
    async def get_by_enrollment(self, enrollment_id: UUID) -> Certificate | None: ...
    async def list_for_student(self, student_id: UUID) -> list[Certificate]: ...


class InMemoryCertificateRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def add(self, certificate: Certificate) -> None:
        """Raises ConflictError if the enrollment already has a certificate
        or the number is taken."""
        for c in self._store.certificates.values():
            if c.enrollment_id == certificate.enrollment_id:
                raise ConflictError("certificate already stored for enrollment")
            if c.certificate_number == certificate.certificate_number:
                raise ConflictError(
                    "certificate number already taken",
                    meta={"certificate_number": certificate.certificate_number},
                )
        self._store.certificates[certificate.id] = certificate

    async def get_by_number(self, certificate_number: str) -> Certificate | None:
        for c in self._store.certificates.values():
            if c.certificate_number == certificate_number:
                return c
        return None

    async def get_by_enrollment(self, enrollment_id: UUID) -> Certificate | None:
        for c in self._store.certificates.values():
            if c.enrollment_id == enrollment_id:
                return c
        return None

    async def list_for_student(self, student_id: UUID) -> list[Certificate]:
        return sorted(
            (c for c in self._store.certificates.values() if c.student_id == student_id),
            key=lambda c: c.issued_at,
            reverse=True,
        )
