"""Tests for certificate issuance, render failure recovery and verification."""

from __future__ import annotations

import asyncio
import dataclasses
import datetime
import uuid

import httpx
import pytest
from prometheus_client import REGISTRY

from courseflow.core.errors import ConflictError
from courseflow.models.certificate import Certificate, RenderedCertificate, RenderRequest
from courseflow.models.progress import Enrollment
from courseflow.repos.certificate_repo import InMemoryCertificateRepo
from courseflow.repos.memory_store import STORE
from courseflow.repos.registry import Repos
from courseflow.services import certificate_issuer, progress_tracker
from courseflow.services.certificate_issuer import (
    CertificateRenderError,
    HttpCertificateRenderer,
)
from courseflow.services.task_queue import InMemoryTaskQueue
from tests.conftest import instructor, principal, seed_course, seed_enrollment


class _FlakyRenderer:
    """Fails the first ``failures`` calls, then renders a link."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls: list[RenderRequest] = []

    async def render(self, request: RenderRequest) -> RenderedCertificate:
        self.calls.append(request)
        if len(self.calls) <= self.failures:
            raise CertificateRenderError("renderer down")
        return RenderedCertificate(
            artifact=None, url=f"https://certs.example/{request.certificate_number}"
        )


def _sample(name: str) -> float:
    value = REGISTRY.get_sample_value(name)
    return value if value is not None else 0.0


def _completed_enrollment(repos: Repos, student, *, certificate: bool = True):
    """Completes the single lesson of a fresh course; returns (course, enrollment)."""
    course, _sections, lessons = seed_course(
        instructor(), lessons_per_section=1, certificate=certificate
    )
    seed_enrollment(student, course)

    async def _run():
        await progress_tracker.record_interaction(
            repos, student, student.user_id, lessons[0][0].id, completed=True
        )
        return await repos.progress.get_enrollment(student.user_id, course.id)

    return course, asyncio.run(_run())


def test_concurrent_issue_creates_exactly_one_certificate(
    repos: Repos, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(certificate_issuer, "renderer", _FlakyRenderer(failures=1))
    student = principal()
    _course, enrollment = _completed_enrollment(repos, student)
    assert enrollment.certificate_issued is False

    async def _run():
        results = await asyncio.gather(
            *(certificate_issuer.issue_if_eligible(repos, enrollment) for _ in range(10))
        )
        stored = await repos.certificates.list_for_student(student.user_id)
        return results, stored

    results, stored = asyncio.run(_run())

    assert sum(1 for r in results if r is not None) == 1
    assert len(stored) == 1


def test_render_failure_keeps_completion_and_queues_retry(
    repos: Repos,
    monkeypatch: pytest.MonkeyPatch,
    fresh_reconciliation_queue: InMemoryTaskQueue,
) -> None:
    monkeypatch.setattr(certificate_issuer, "renderer", _FlakyRenderer(failures=1))
    failures_before = _sample("certificate_render_failures_total")
    student = principal()

    _course, enrollment = _completed_enrollment(repos, student)

    assert enrollment.is_completed is True
    assert enrollment.certificate_issued is False
    assert enrollment.certificate_url is None
    assert _sample("certificate_render_failures_total") - failures_before == 1
    queued = asyncio.run(
        fresh_reconciliation_queue.dequeue(certificate_issuer.RECONCILIATION_QUEUE)
    )
    assert queued is not None
    assert queued.payload == {"enrollment_id": str(enrollment.id)}


def test_reconcile_issues_after_render_recovers(
    repos: Repos, monkeypatch: pytest.MonkeyPatch
) -> None:
    renderer = _FlakyRenderer(failures=1)
    monkeypatch.setattr(certificate_issuer, "renderer", renderer)
    student = principal()
    course, enrollment = _completed_enrollment(repos, student)

    async def _run():
        issued = await certificate_issuer.reconcile(repos)
        again = await certificate_issuer.reconcile(repos)
        return issued, again, await repos.progress.get_enrollment_by_id(enrollment.id)

    issued, again, refreshed = asyncio.run(_run())

    assert issued == 1
    assert again == 0
    assert refreshed.certificate_issued is True
    assert refreshed.certificate_url.startswith("https://certs.example/CF-")
    assert renderer.calls[-1].course_title == course.title
    assert renderer.calls[-1].student_name == student.name


def test_reconcile_failure_does_not_requeue(
    repos: Repos,
    monkeypatch: pytest.MonkeyPatch,
    fresh_reconciliation_queue: InMemoryTaskQueue,
) -> None:
    monkeypatch.setattr(certificate_issuer, "renderer", _FlakyRenderer(failures=5))
    student = principal()
    _completed_enrollment(repos, student)
    queue_name = certificate_issuer.RECONCILIATION_QUEUE
    depth_after_completion = asyncio.run(fresh_reconciliation_queue.queue_length(queue_name))

    issued = asyncio.run(certificate_issuer.reconcile(repos))

    assert issued == 0
    assert asyncio.run(fresh_reconciliation_queue.queue_length(queue_name)) == (
        depth_after_completion
    )


def test_not_eligible_without_certificate_flag(repos: Repos) -> None:
    student = principal()
    _course, enrollment = _completed_enrollment(repos, student, certificate=False)

    assert asyncio.run(certificate_issuer.issue_if_eligible(repos, enrollment)) is None


def test_not_eligible_before_completion(repos: Repos) -> None:
    student = principal()
    course, _sections, _lessons = seed_course(
        instructor(), lessons_per_section=2, certificate=True
    )
    enrollment = seed_enrollment(student, course)

    assert asyncio.run(certificate_issuer.issue_if_eligible(repos, enrollment)) is None


def test_verify_round_trip(repos: Repos) -> None:
    student = principal(name="Ada Lovelace")
    course, enrollment = _completed_enrollment(repos, student)

    async def _run():
        [certificate] = await certificate_issuer.list_for_student(repos, student)
        return certificate, await certificate_issuer.verify(
            repos, f"  {certificate.certificate_number.lower()} "
        )

    certificate, result = asyncio.run(_run())

    assert certificate.enrollment_id == enrollment.id
    assert result == {
        "valid": True,
        "certificate_number": certificate.certificate_number,
        "student_name": "Ada Lovelace",
        "course_title": course.title,
        "issued_at": certificate.issued_at,
    }


def test_verify_unknown_number(repos: Repos) -> None:
    assert asyncio.run(certificate_issuer.verify(repos, "CF-2020-DEADBEEF")) == {
        "valid": False
    }


def test_certificate_number_format(repos: Repos) -> None:
    student = principal()
    _course, enrollment = _completed_enrollment(repos, student)

    [certificate] = asyncio.run(certificate_issuer.list_for_student(repos, student))

    prefix, year, suffix = certificate.certificate_number.split("-")
    assert prefix == "CF"
    assert len(year) == 4
    assert suffix == enrollment.id.hex[-8:].upper()


def _completed_with_id(repos: Repos, enrollment_id: uuid.UUID):
    """Like _completed_enrollment, but the enrollment gets ``enrollment_id``."""
    student = principal()
    course, _sections, lessons = seed_course(
        instructor(), lessons_per_section=1, certificate=True
    )
    enrollment = dataclasses.replace(
        Enrollment.new(
            student_id=student.user_id,
            course_id=course.id,
            student_name=student.name,
            enrolled_at=1_700_000_000,
        ),
        id=enrollment_id,
    )

    async def _run():
        await repos.progress.add_enrollment(enrollment)
        completed = await progress_tracker.record_interaction(
            repos, student, student.user_id, lessons[0][0].id, completed=True
        )
        [certificate] = await repos.certificates.list_for_student(student.user_id)
        return completed, certificate

    return asyncio.run(_run())


def test_shared_suffix_gets_full_id_number(repos: Repos) -> None:
    first_id = uuid.UUID("00000000-0000-4000-8000-0000deadbeef")
    second_id = uuid.UUID("11111111-1111-4111-8111-1111deadbeef")

    first, first_certificate = _completed_with_id(repos, first_id)
    second, second_certificate = _completed_with_id(repos, second_id)

    assert first.is_completed is True
    assert first.certificate_issued is True
    assert second.certificate_issued is True
    assert first_certificate.certificate_number.endswith("-DEADBEEF")
    assert second_certificate.certificate_number.endswith("-" + second_id.hex.upper())
    result = asyncio.run(
        certificate_issuer.verify(repos, second_certificate.certificate_number)
    )
    assert result["valid"] is True


class _RejectingCertificateRepo(InMemoryCertificateRepo):
    async def add(self, certificate: Certificate) -> None:
        raise ConflictError("certificate already stored")


def test_store_failure_keeps_completion_and_queues_retry(
    repos: Repos, fresh_reconciliation_queue: InMemoryTaskQueue
) -> None:
    rejecting = dataclasses.replace(repos, certificates=_RejectingCertificateRepo(STORE))
    failures_before = _sample("certificate_store_failures_total")
    student = principal()

    _course, enrollment = _completed_enrollment(rejecting, student)

    assert enrollment.is_completed is True
    assert enrollment.certificate_issued is False
    assert _sample("certificate_store_failures_total") - failures_before == 1
    queued = asyncio.run(
        fresh_reconciliation_queue.dequeue(certificate_issuer.RECONCILIATION_QUEUE)
    )
    assert queued.payload == {"enrollment_id": str(enrollment.id)}

    assert asyncio.run(certificate_issuer.reconcile(repos)) == 1


# ---- HTTP renderer ----


def _request() -> RenderRequest:
    return RenderRequest(
        certificate_number="CF-2026-ABCDEF12",
        student_name="Ada",
        course_title="Async Python",
        completion_date=datetime.date(2026, 10, 17),
    )


def _patch_transport(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    real_client = httpx.AsyncClient

    def _client(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(certificate_issuer.httpx, "AsyncClient", _client)


def test_http_renderer_posts_and_returns_url(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"url": "https://cdn.example/c.pdf"})

    _patch_transport(monkeypatch, handler)
    rendered = asyncio.run(HttpCertificateRenderer("http://renderer/").render(_request()))

    assert rendered.url == "https://cdn.example/c.pdf"
    assert str(seen[0].url) == "http://renderer/render"
    assert b'"completion_date":"2026-10-17"' in seen[0].content.replace(b" ", b"")


@pytest.mark.parametrize(
    "response",
    [httpx.Response(503), httpx.Response(200, json={})],
    ids=["server-error", "missing-url"],
)
def test_http_renderer_maps_bad_responses(
    monkeypatch: pytest.MonkeyPatch, response: httpx.Response
) -> None:
    _patch_transport(monkeypatch, lambda request: response)

    with pytest.raises(CertificateRenderError):
        asyncio.run(HttpCertificateRenderer("http://renderer").render(_request()))


def test_http_renderer_maps_transport_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    _patch_transport(monkeypatch, handler)

    with pytest.raises(CertificateRenderError):
        asyncio.run(HttpCertificateRenderer("http://renderer").render(_request()))

