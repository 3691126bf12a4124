"""
PostgreSQL result sink.

Implements every write as INSERT ... ON CONFLICT DO UPDATE so re-delivered
findings and re-computed scores are idempotent. Rows carry an ``expires_at``
timestamp derived from the environment's report retention period.
"""

from datetime import datetime, timedelta, timezone

from psycopg import OperationalError
from psycopg.types.json import Jsonb

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

from .connection import DatabaseConnectionPool
from .sinks import ResultSink

UPSERT_REPORT_RUN = """
    INSERT INTO report_runs (
        execution_id, report_execution_id, report_date, status, state,
        transitions, failure, unparseable_records, started_at, updated_at, expires_at
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (execution_id) DO UPDATE SET
        status = EXCLUDED.status,
        state = EXCLUDED.state,
        transitions = EXCLUDED.transitions,
        failure = EXCLUDED.failure,
        unparseable_records = EXCLUDED.unparseable_records,
        updated_at = EXCLUDED.updated_at
"""

UPDATE_RUN_STATUS = """
    UPDATE report_runs
    SET status = %s, updated_at = %s
    WHERE execution_id = %s
"""

UPSERT_FINDING = """
    INSERT INTO validation_findings (
        finding_id, execution_id, record_id, field_name, phase, rule_id,
        severity, sample_value, message, expires_at
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (execution_id, finding_id) DO UPDATE SET
        severity = EXCLUDED.severity,
        sample_value = EXCLUDED.sample_value,
        message = EXCLUDED.message
"""

UPSERT_RECORD_SCORE = """
    INSERT INTO record_scores (
        execution_id, record_id, penalty_points, accuracy_score, finding_ids, expires_at
    )
    VALUES (%s, %s, %s, %s, %s, %s)
    ON CONFLICT (execution_id, record_id) DO UPDATE SET
        penalty_points = EXCLUDED.penalty_points,
        accuracy_score = EXCLUDED.accuracy_score,
        finding_ids = EXCLUDED.finding_ids
"""

UPSERT_FIELD_SCORE = """
    INSERT INTO field_scores (
        execution_id, field_name, category, invalid_records, validity_score, expires_at
    )
    VALUES (%s, %s, %s, %s, %s, %s)
    ON CONFLICT (execution_id, field_name) DO UPDATE SET
        invalid_records = EXCLUDED.invalid_records,
        validity_score = EXCLUDED.validity_score
"""

UPSERT_CATEGORY_SCORE = """
    INSERT INTO category_scores (
        execution_id, category, field_count, invalid_field_values, score, expires_at
    )
    VALUES (%s, %s, %s, %s, %s, %s)
    ON CONFLICT (execution_id, category) DO UPDATE SET
        field_count = EXCLUDED.field_count,
        invalid_field_values = EXCLUDED.invalid_field_values,
        score = EXCLUDED.score
"""

UPSERT_OVERALL_SCORE = """
    INSERT INTO overall_scores (
        execution_id, total_records, records_with_errors, critical_count, major_count,
        minor_count, total_penalty_points, overall_accuracy_score, traffic_light,
        unparseable_records, calculated_at, expires_at
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (execution_id) DO UPDATE SET
        total_records = EXCLUDED.total_records,
        records_with_errors = EXCLUDED.records_with_errors,
        critical_count = EXCLUDED.critical_count,
        major_count = EXCLUDED.major_count,
        minor_count = EXCLUDED.minor_count,
        total_penalty_points = EXCLUDED.total_penalty_points,
        overall_accuracy_score = EXCLUDED.overall_accuracy_score,
        traffic_light = EXCLUDED.traffic_light,
        unparseable_records = EXCLUDED.unparseable_records,
        calculated_at = EXCLUDED.calculated_at
"""


class PostgresResultSink(ResultSink):
    """
    Result sink backed by PostgreSQL (tables from docker/init-db.sql).

    Connection-level failures surface as PersistenceError so callers can
    retry them; wrap in RetryingResultSink for automatic backoff.
    """

    def __init__(self, pool: DatabaseConnectionPool, retention_days: int = 730):
        """
        Initialize the sink.

        Args:
            pool: Open database connection pool
            retention_days: Days rows are kept before ``expires_at``
        """
        self.pool = pool
        self.retention_days = retention_days

    def _expires_at(self) -> datetime:
        return datetime.now(timezone.utc) + timedelta(days=self.retention_days)

    def _execute(self, command: str, params: tuple) -> int:
        try:
            return self.pool.execute_command(command, params)
        except OperationalError as e:
            raise PersistenceError(f"Result store write failed: {e}") from e

    def put_report_run(self, run: ReportRun) -> None:
        transitions = {state.value: ts.isoformat() for state, ts in run.transitions.items()}
        failure = run.failure.model_dump(mode="json") if run.failure else None
        self._execute(
            UPSERT_REPORT_RUN,
            (
                run.execution_id,
                run.report_execution_id,
                run.report_date,
                run.status.value,
                run.state.value,
                Jsonb(transitions),
                Jsonb(failure) if failure else None,
                run.unparseable_records,
                run.started_at,
                datetime.now(timezone.utc),
                self._expires_at(),
            ),
        )

    def update_report_run_status(self, execution_id: str, status: RunStatus, timestamp: datetime) -> None:
        self._execute(UPDATE_RUN_STATUS, (status.value, timestamp, execution_id))

    def put_finding(self, execution_id: str, finding: ValidationFinding) -> None:
        self._execute(
            UPSERT_FINDING,
            (
                finding.finding_id,
                execution_id,
                finding.record_id,
                finding.field_name,
                finding.phase.value,
                finding.rule_id,
                finding.severity.value,
                finding.sample_value,
                finding.message,
                self._expires_at(),
            ),
        )

    def put_record_score(self, execution_id: str, score: RecordScore) -> None:
        self._execute(
            UPSERT_RECORD_SCORE,
            (
                execution_id,
                score.record_id,
                score.penalty_points,
                score.accuracy_score,
                list(score.finding_ids),
                self._expires_at(),
            ),
        )

    def put_field_score(self, execution_id: str, score: FieldScore) -> None:
        self._execute(
            UPSERT_FIELD_SCORE,
            (
                execution_id,
                score.field_name,
                score.category,
                score.invalid_records,
                score.validity_score,
                self._expires_at(),
            ),
        )

    def put_category_score(self, execution_id: str, score: CategoryScore) -> None:
        self._execute(
            UPSERT_CATEGORY_SCORE,
            (
                execution_id,
                score.category,
                score.field_count,
                score.invalid_field_values,
                score.score,
                self._expires_at(),
            ),
        )

    def put_overall_score(self, execution_id: str, score: OverallScore) -> None:
        self._execute(
            UPSERT_OVERALL_SCORE,
            (
                execution_id,
                score.total_records,
                score.records_with_errors,
                score.critical_count,
                score.major_count,
                score.minor_count,
                score.total_penalty_points,
                score.overall_accuracy_score,
                score.traffic_light.value,
                score.unparseable_records,
                score.calculated_at,
                self._expires_at(),
            ),
        )

    def close(self) -> None:
        self.pool.close()
