"""
Unit tests for the in-memory and retrying result sinks.
"""

from datetime import date, datetime, timezone

import pytest

from emir_quality.core.errors import PersistenceError
from emir_quality.core.models import FieldScore, ReportRun, RunStatus, Severity, ValidationFinding, ValidationPhase
from emir_quality.warehouse import InMemoryResultSink, RetryingResultSink

NOW = datetime(2025, 9, 25, 6, 0, tzinfo=timezone.utc)


def finding(record_id="UTI1#1"):
    return ValidationFinding.create(
        record_id=record_id,
        phase=ValidationPhase.COMPLETENESS,
        rule_id="MISSING_MANDATORY_FIELD",
        severity=Severity.MAJOR,
        field_name="asset_class",
    )


class FailingSink(InMemoryResultSink):
    """Raises ``error`` on the first ``failures`` finding writes"""

    def __init__(self, failures, error=None):
        super().__init__()
        self.failures = failures
        self.error = error or PersistenceError("connection refused")
        self.attempts = 0

    def put_finding(self, execution_id, finding):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error
        super().put_finding(execution_id, finding)


@pytest.mark.unit
class TestInMemoryResultSink:
    """Tests for InMemoryResultSink"""

    def test_finding_writes_are_idempotent(self):
        sink = InMemoryResultSink()

        sink.put_finding("run-1", finding())
        sink.put_finding("run-1", finding())

        assert len(sink.findings_for("run-1")) == 1
        assert sink.findings_for("run-2") == []

    def test_repeated_status_is_collapsed(self):
        sink = InMemoryResultSink()

        sink.update_report_run_status("run-1", RunStatus.IN_PROGRESS, NOW)
        sink.update_report_run_status("run-1", RunStatus.IN_PROGRESS, NOW)

        assert sink.statuses_for("run-1") == [RunStatus.IN_PROGRESS]

    def test_scores_keyed_by_name(self):
        sink = InMemoryResultSink()
        score = FieldScore(field_name="isin", category="instrument", invalid_records=0, validity_score=100.0)

        sink.put_field_score("run-1", score)
        sink.put_field_score("run-1", score)

        assert list(sink.field_scores["run-1"]) == ["isin"]

    def test_stored_run_is_a_copy(self):
        sink = InMemoryResultSink()
        run = ReportRun(report_date=date(2025, 9, 25))

        sink.put_report_run(run)
        run.unparseable_records = 5

        assert sink.runs[run.execution_id].unparseable_records == 0


@pytest.mark.unit
class TestRetryingResultSink:
    """Tests for RetryingResultSink"""

    def test_retries_transient_failures(self):
        inner = FailingSink(failures=2)
        delays = []
        sink = RetryingResultSink(inner, max_retries=3, base_delay=0.1, sleep=delays.append)

        sink.put_finding("run-1", finding())

        assert inner.attempts == 3
        assert delays == [0.1, 0.2]
        assert len(inner.findings_for("run-1")) == 1

    def test_gives_up_after_max_retries(self):
        inner = FailingSink(failures=10)
        sink = RetryingResultSink(inner, max_retries=2, sleep=lambda s: None)

        with pytest.raises(PersistenceError):
            sink.put_finding("run-1", finding())
        assert inner.attempts == 3

    def test_other_errors_propagate_immediately(self):
        inner = FailingSink(failures=1, error=TypeError("bad row"))
        sink = RetryingResultSink(inner, sleep=lambda s: None)

        with pytest.raises(TypeError):
            sink.put_finding("run-1", finding())
        assert inner.attempts == 1

    def test_delay_capped(self):
        inner = FailingSink(failures=3)
        delays = []
        sink = RetryingResultSink(inner, max_retries=3, base_delay=1.0, max_delay=1.5, sleep=delays.append)

        sink.put_finding("run-1", finding())

        assert delays == [1.0, 1.5, 1.5]

    def test_context_manager_closes_inner(self):
        closed = []

        class ClosingSink(InMemoryResultSink):
            def close(self):
                closed.append(True)

        with RetryingResultSink(ClosingSink()):
            pass

        assert closed == [True]
