"""
Result sinks: where findings, scores and run status are published.

Every write is idempotent: findings are keyed by finding_id, scores by
record/field/category within a run, run rows by execution_id. Writing the
same object twice leaves the store unchanged, which is what lets phases and
sink calls be retried safely.
"""

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any

from emir_quality.core.errors import PersistenceError
from emir_quality.core.models import (
    CategoryScore,
    FieldScore,
    OverallScore,
    RecordScore,
    ReportRun,
    RunStatus,
    ValidationFinding,
)
from emir_quality.observability.logger import get_logger
from emir_quality.observability.metrics import MetricsCollector

logger = get_logger(__name__)


class ResultSink(ABC):
    """
    Abstract result store.

    Implementations raise PersistenceError for transient failures; any other
    exception is treated as a defect.
    """

    @abstractmethod
    def put_report_run(self, run: ReportRun) -> None:
        """Insert or replace the full run row (start and terminal states)."""

    @abstractmethod
    def update_report_run_status(self, execution_id: str, status: RunStatus, timestamp: datetime) -> None:
        """Record a status change of a run."""

    @abstractmethod
    def put_finding(self, execution_id: str, finding: ValidationFinding) -> None:
        pass

    @abstractmethod
    def put_record_score(self, execution_id: str, score: RecordScore) -> None:
        pass

    @abstractmethod
    def put_field_score(self, execution_id: str, score: FieldScore) -> None:
        pass

    @abstractmethod
    def put_category_score(self, execution_id: str, score: CategoryScore) -> None:
        pass

    @abstractmethod
    def put_overall_score(self, execution_id: str, score: OverallScore) -> None:
        pass

    def close(self) -> None:
        """Release resources held by the sink."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class InMemoryResultSink(ResultSink):
    """
    Thread-safe in-process sink for tests, the CLI and embedding.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.runs: dict[str, ReportRun] = {}
        self.status_history: dict[str, list[tuple[RunStatus, datetime]]] = {}
        self.findings: dict[str, dict[str, ValidationFinding]] = {}
        self.record_scores: dict[str, dict[str, RecordScore]] = {}
        self.field_scores: dict[str, dict[str, FieldScore]] = {}
        self.category_scores: dict[str, dict[str, CategoryScore]] = {}
        self.overall_scores: dict[str, OverallScore] = {}

    def put_report_run(self, run: ReportRun) -> None:
        with self._lock:
            self.runs[run.execution_id] = run.model_copy(deep=True)

    def update_report_run_status(self, execution_id: str, status: RunStatus, timestamp: datetime) -> None:
        with self._lock:
            history = self.status_history.setdefault(execution_id, [])
            if not history or history[-1][0] != status:
                history.append((status, timestamp))

    def put_finding(self, execution_id: str, finding: ValidationFinding) -> None:
        with self._lock:
            self.findings.setdefault(execution_id, {})[finding.finding_id] = finding

    def put_record_score(self, execution_id: str, score: RecordScore) -> None:
        with self._lock:
            self.record_scores.setdefault(execution_id, {})[score.record_id] = score

    def put_field_score(self, execution_id: str, score: FieldScore) -> None:
        with self._lock:
            self.field_scores.setdefault(execution_id, {})[score.field_name] = score

    def put_category_score(self, execution_id: str, score: CategoryScore) -> None:
        with self._lock:
            self.category_scores.setdefault(execution_id, {})[score.category] = score

    def put_overall_score(self, execution_id: str, score: OverallScore) -> None:
        with self._lock:
            self.overall_scores[execution_id] = score

    def findings_for(self, execution_id: str) -> list[ValidationFinding]:
        with self._lock:
            return list(self.findings.get(execution_id, {}).values())

    def statuses_for(self, execution_id: str) -> list[RunStatus]:
        with self._lock:
            return [status for status, _ in self.status_history.get(execution_id, [])]


class RetryingResultSink(ResultSink):
    """
    Wraps a sink and retries PersistenceError with exponential backoff.

    Delay before retry n (1-based) is ``base_delay * 2 ** (n - 1)``, capped at
    ``max_delay``. Other exceptions propagate immediately.
    """

    def __init__(
        self,
        inner: ResultSink,
        max_retries: int = 3,
        base_delay: float = 0.1,
        max_delay: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the retrying wrapper.

        Args:
            inner: Sink doing the actual writes
            max_retries: Retries after the first attempt
            base_delay: Delay before the first retry, in seconds
            max_delay: Upper bound for any single delay
            sleep: Sleep function (injectable for tests)
            metrics: Metrics collector
        """
        self.inner = inner
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.sleep = sleep
        self.metrics = metrics or MetricsCollector()

    def _call(self, operation: str, func: Callable[..., Any], *args) -> Any:
        for attempt in range(self.max_retries + 1):
            try:
                result = func(*args)
            except PersistenceError as e:
                if attempt >= self.max_retries:
                    self.metrics.record_sink_retry(operation, success=False)
                    logger.error(
                        f"Sink write {operation} failed after {attempt + 1} attempts",
                        extra={"operation": operation, "attempts": attempt + 1, "error_message": str(e)},
                    )
                    raise
                delay = min(self.base_delay * 2 ** attempt, self.max_delay)
                logger.warning(
                    f"Sink write {operation} failed, retrying in {delay:.2f}s",
                    extra={"operation": operation, "attempt": attempt + 1, "error_message": str(e)},
                )
                self.sleep(delay)
                continue

            if attempt > 0:
                self.metrics.record_sink_retry(operation, success=True)
            self.metrics.record_sink_write(operation)
            return result

    def put_report_run(self, run: ReportRun) -> None:
        self._call("put_report_run", self.inner.put_report_run, run)

    def update_report_run_status(self, execution_id: str, status: RunStatus, timestamp: datetime) -> None:
        self._call("update_report_run_status", self.inner.update_report_run_status, execution_id, status, timestamp)

    def put_finding(self, execution_id: str, finding: ValidationFinding) -> None:
        self._call("put_finding", self.inner.put_finding, execution_id, finding)

    def put_record_score(self, execution_id: str, score: RecordScore) -> None:
        self._call("put_record_score", self.inner.put_record_score, execution_id, score)

    def put_field_score(self, execution_id: str, score: FieldScore) -> None:
        self._call("put_field_score", self.inner.put_field_score, execution_id, score)

    def put_category_score(self, execution_id: str, score: CategoryScore) -> None:
        self._call("put_category_score", self.inner.put_category_score, execution_id, score)

    def put_overall_score(self, execution_id: str, score: OverallScore) -> None:
        self._call("put_overall_score", self.inner.put_overall_score, execution_id, score)

    def close(self) -> None:
        self.inner.close()
