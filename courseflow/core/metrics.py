"""Prometheus metric inventory for courseflow.

Every metric the service exports is declared here; the module that owns
the behavior imports the metric and increments it at the point of
action.  Counters only go up, so tests assert on deltas.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Content ordering
# ---------------------------------------------------------------------------

LESSON_REORDERS = Counter(
    "lesson_reorders_total",
    "Ordering mutations applied to sections and courses",
    ["operation"],  # insert|delete|move|reorder|section_insert|section_delete|section_reorder
)

# ---------------------------------------------------------------------------
# Progress and certification
# ---------------------------------------------------------------------------

COURSE_COMPLETIONS = Counter(
    "course_completions_total",
    "Enrollments that transitioned to completed",
)

CERTIFICATES_ISSUED = Counter(
    "certificates_issued_total",
    "Certificates successfully rendered and recorded",
)

CERTIFICATE_RENDER_FAILURES = Counter(
    "certificate_render_failures_total",
    "Certificate renders that failed and released their claim",
)

CERTIFICATE_STORE_FAILURES = Counter(
    "certificate_store_failures_total",
    "Rendered certificates that could not be stored and released their claim",
)

# ---------------------------------------------------------------------------
# Quiz attempts
# ---------------------------------------------------------------------------

QUIZ_ATTEMPTS = Counter(
    "quiz_attempts_total",
    "Quiz submissions by gate outcome",
    ["outcome"],  # accepted|exhausted|cooldown|conflict
)

# ---------------------------------------------------------------------------
# Background work
# ---------------------------------------------------------------------------

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # "certificate_reconciliation"
)
