"""
Prometheus metrics collection for the EMIR quality engine

This module provides metrics instrumentation for monitoring validation
throughput, finding volumes, phase durations and run outcomes.
"""
import os
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Private registry so the engine's metrics never collide with a host application's
REGISTRY = CollectorRegistry()


# =======================
# VALIDATION METRICS
# =======================

records_validated_total = Counter(
    name="emir_records_validated_total",
    documentation="Total number of records evaluated by a validation phase",
    labelnames=["phase"],
    registry=REGISTRY,
)

findings_total = Counter(
    name="emir_findings_total",
    documentation="Total number of validation findings emitted",
    labelnames=["phase", "severity"],
    registry=REGISTRY,
)

unparseable_records_total = Counter(
    name="emir_unparseable_records_total",
    documentation="Records excluded from a phase because they could not be parsed",
    labelnames=["phase"],
    registry=REGISTRY,
)

shard_batch_size = Histogram(
    name="emir_shard_batch_size_records",
    documentation="Number of records per shard micro-batch",
    labelnames=["phase"],
    buckets=[1, 10, 50, 100, 500, 1000, 5000, 10000],
    registry=REGISTRY,
)

# =======================
# PIPELINE METRICS
# =======================

phase_duration_seconds = Histogram(
    name="emir_phase_duration_seconds",
    documentation="Time spent in a pipeline phase (per attempt)",
    labelnames=["phase", "status"],
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0],
    registry=REGISTRY,
)

phase_retries_total = Counter(
    name="emir_phase_retries_total",
    documentation="Total number of phase retry attempts",
    labelnames=["phase"],
    registry=REGISTRY,
)

runs_total = Counter(
    name="emir_report_runs_total",
    documentation="Total number of report runs by terminal status",
    labelnames=["status"],
    registry=REGISTRY,
)

overall_accuracy_score = Gauge(
    name="emir_overall_accuracy_score",
    documentation="Overall accuracy score of the most recent completed run",
    labelnames=["report_date"],
    registry=REGISTRY,
)

# =======================
# SINK METRICS
# =======================

sink_writes_total = Counter(
    name="emir_sink_writes_total",
    documentation="Total number of result sink writes",
    labelnames=["operation"],
    registry=REGISTRY,
)

sink_retries_total = Counter(
    name="emir_sink_retries_total",
    documentation="Total number of result sink retry attempts",
    labelnames=["operation", "status"],  # status: success, failure
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Lazy import: only bind a port when the endpoint is actually wanted
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


class track_duration:
    """
    Context manager for tracking phase duration with a success/error label

    Usage:
        with track_duration(phase_duration_seconds, phase="FORMAT"):
            # do work
            pass
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.start = None

    def __enter__(self):
        import time
        self.start = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        import time
        status = "success" if exc_type is None else "error"
        self.histogram.labels(status=status, **self.labels).observe(time.monotonic() - self.start)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    counter.labels(**labels).inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    gauge.labels(**labels).set(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    histogram.labels(**labels).observe(value)


class MetricsCollector:
    """
    Metrics facade used by the validators and orchestrator.

    Keeps metric names out of the pipeline code.
    """

    def record_batch(self, phase: str, record_count: int) -> None:
        """
        Record a shard micro-batch.

        Args:
            phase: Validation phase name
            record_count: Records in the batch
        """
        if record_count > 0:
            increment_counter(records_validated_total, record_count, phase=phase)
            observe_histogram(shard_batch_size, record_count, phase=phase)

    def record_finding(self, phase: str, severity: str) -> None:
        increment_counter(findings_total, 1, phase=phase, severity=severity)

    def record_unparseable(self, phase: str, count: int = 1) -> None:
        if count > 0:
            increment_counter(unparseable_records_total, count, phase=phase)

    def record_retry(self, phase: str) -> None:
        increment_counter(phase_retries_total, 1, phase=phase)

    def record_run_outcome(self, status: str, report_date: str, score: float | None = None) -> None:
        """
        Record the terminal status of a run.

        Args:
            status: COMPLETED or FAILED
            report_date: Report date (ISO format)
            score: Overall accuracy score, when the run completed
        """
        increment_counter(runs_total, 1, status=status)
        if score is not None:
            set_gauge(overall_accuracy_score, score, report_date=report_date)

    def record_sink_write(self, operation: str) -> None:
        increment_counter(sink_writes_total, 1, operation=operation)

    def record_sink_retry(self, operation: str, success: bool) -> None:
        increment_counter(sink_retries_total, 1, operation=operation, status="success" if success else "failure")
