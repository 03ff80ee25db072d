from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


email_send_total = Counter(
    "email_send_total",
    "Total number of email send attempts per provider.",
    ["provider", "outcome"],
)

email_send_duration_seconds = Histogram(
    "email_send_duration_seconds",
    "Email provider send latency in seconds.",
    ["provider"],
)

email_health_checks_total = Counter(
    "email_health_checks_total",
    "Total number of email provider health probes.",
    ["provider", "status"],
)

email_provider_health_score = Gauge(
    "email_provider_health_score",
    "Last observed health score per email provider.",
    ["provider"],
)

email_circuit_open = Gauge(
    "email_circuit_open",
    "1 when the provider circuit breaker is open, 0 otherwise.",
    ["provider"],
)

email_metric_persist_failures_total = Counter(
    "email_metric_persist_failures_total",
    "Send metric rows that could not be persisted.",
    ["provider"],
)


def observe_send(provider: str, *, success: bool, latency_ms: int) -> None:
    email_send_total.labels(provider=provider, outcome="success" if success else "failure").inc()
    email_send_duration_seconds.labels(provider=provider).observe(max(latency_ms, 0) / 1000.0)


def observe_health(provider: str, *, status: str, health_score: int) -> None:
    email_health_checks_total.labels(provider=provider, status=status).inc()
    email_provider_health_score.labels(provider=provider).set(health_score)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
