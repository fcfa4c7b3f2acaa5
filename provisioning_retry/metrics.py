"""
Retry Scheduler Metrics
=======================
Prometheus metrics for the retry scheduler.

Tracks:
- Jobs enqueued and enqueue failures
- Jobs claimed and dead-lettered per tick
- Outcomes by audit status
- Execution latency
- Pending and in-flight queue depth
- Tick errors
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Dedicated registry, served by export_metrics()
RETRY_REGISTRY = CollectorRegistry()

JOBS_ENQUEUED = Counter(
    name="provisioning_retry_jobs_enqueued_total",
    documentation="Retry jobs written to the job store",
    labelnames=["attempt"],
    registry=RETRY_REGISTRY,
)

ENQUEUE_FAILURES = Counter(
    name="provisioning_retry_enqueue_failures_total",
    documentation="Retry jobs that could not be written to the job store",
    registry=RETRY_REGISTRY,
)

JOBS_CLAIMED = Counter(
    name="provisioning_retry_jobs_claimed_total",
    documentation="Retry jobs claimed by a worker",
    registry=RETRY_REGISTRY,
)

JOB_OUTCOMES = Counter(
    name="provisioning_retry_outcomes_total",
    documentation="Retry attempt outcomes by audit status",
    labelnames=["status"],
    registry=RETRY_REGISTRY,
)

EXECUTION_LATENCY = Histogram(
    name="provisioning_retry_execution_duration_seconds",
    documentation="Time spent executing a provisioning retry",
    labelnames=["result"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=RETRY_REGISTRY,
)

PENDING_JOBS = Gauge(
    name="provisioning_retry_pending_jobs",
    documentation="Retry jobs waiting in the job store",
    registry=RETRY_REGISTRY,
)

IN_FLIGHT_JOBS = Gauge(
    name="provisioning_retry_in_flight_jobs",
    documentation="Claimed retry jobs still holding a lease",
    registry=RETRY_REGISTRY,
)

TICK_ERRORS = Counter(
    name="provisioning_retry_tick_errors_total",
    documentation="Worker ticks abandoned because of an error",
    registry=RETRY_REGISTRY,
)


def record_enqueued(attempt: int) -> None:
    JOBS_ENQUEUED.labels(attempt=str(attempt)).inc()


def record_enqueue_failure() -> None:
    ENQUEUE_FAILURES.inc()


def record_claimed(count: int) -> None:
    if count:
        JOBS_CLAIMED.inc(count)


def record_outcome(status: str) -> None:
    JOB_OUTCOMES.labels(status=status).inc()


def record_execution(success: bool, duration_seconds: float) -> None:
    EXECUTION_LATENCY.labels(result="success" if success else "failure").observe(
        duration_seconds
    )


def record_queue_depth(pending: int, in_flight: int = 0) -> None:
    PENDING_JOBS.set(pending)
    IN_FLIGHT_JOBS.set(in_flight)


def record_tick_error() -> None:
    TICK_ERRORS.inc()


def export_metrics() -> bytes:
    """Export metrics in Prometheus text format."""
    return generate_latest(RETRY_REGISTRY)


__all__ = [
    "RETRY_REGISTRY",
    "CONTENT_TYPE_LATEST",
    "record_enqueued",
    "record_enqueue_failure",
    "record_claimed",
    "record_outcome",
    "record_execution",
    "record_queue_depth",
    "record_tick_error",
    "export_metrics",
]
