"""Tests for Prometheus metrics middleware.

prometheus-client uses a global default registry and counters cannot be
reset between tests, so every test asserts on deltas.
"""

from __future__ import annotations

import uuid

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from tests.conftest import auth, mint_token

COURSE_ROUTE = "/v1/courses/{course_id}"


def _get_sample(name: str, labels: dict | None = None) -> float:
    """Read a metric sample's current value from the global registry."""
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def test_request_counter_uses_route_template(client: TestClient) -> None:
    """Ids in the path collapse onto the route template label."""
    labels = {"method": "GET", "endpoint": COURSE_ROUTE, "status_code": "404"}
    headers = auth(mint_token())
    before = _get_sample("http_requests_total", labels)

    client.get(f"/v1/courses/{uuid.uuid4()}", headers=headers)
    client.get(f"/v1/courses/{uuid.uuid4()}", headers=headers)

    assert _get_sample("http_requests_total", labels) - before == 2


def test_request_counter_records_auth_failures(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": COURSE_ROUTE, "status_code": "401"}
    before = _get_sample("http_requests_total", labels)

    client.get(f"/v1/courses/{uuid.uuid4()}")

    assert _get_sample("http_requests_total", labels) - before == 1


def test_unmatched_paths_share_one_label(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "unmatched", "status_code": "404"}
    before = _get_sample("http_requests_total", labels)

    client.get("/no/such/thing")
    client.get("/another/missing/path")

    assert _get_sample("http_requests_total", labels) - before == 2


def test_request_duration_histogram_observes(client: TestClient) -> None:
    """Each request should add an observation to the duration histogram."""
    labels = {"method": "GET", "endpoint": COURSE_ROUTE}
    before = _get_sample("http_request_duration_seconds_count", labels)

    client.get(f"/v1/courses/{uuid.uuid4()}", headers=auth(mint_token()))

    assert _get_sample("http_request_duration_seconds_count", labels) - before == 1


def test_metrics_endpoint_returns_prometheus_format(client: TestClient) -> None:
    """GET /metrics should return Prometheus text exposition format."""
    client.get(f"/v1/courses/{uuid.uuid4()}")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
    assert "http_request_duration_seconds" in resp.text


def test_health_checks_and_scrapes_are_not_instrumented(client: TestClient) -> None:
    """Requests to /metrics, /health and /ready are skipped."""
    for path in ("/metrics", "/health", "/ready"):
        labels = {"method": "GET", "endpoint": path, "status_code": "200"}
        before = _get_sample("http_requests_total", labels)
        client.get(path)
        client.get(path)
        assert _get_sample("http_requests_total", labels) == before
