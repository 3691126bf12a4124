"""
Pipeline orchestrator: sequences the validation phases of one report run.

    INITIATED -> COMPLETENESS -> FORMAT_AND_LOGICAL -> SCORING -> COMPLETED
                      \\                 \\                 \\
                       +-----------------+-----------------+--> FAILED

Format and logical validation run in parallel on a two-worker pool and
both must finish before scoring starts. Each phase is retried according to
the RetryPolicy; a failed phase fails the run and no overall score is
published.
"""

import threading
from collections.abc import Callable
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import date
from typing import TYPE_CHECKING

from emir_quality.batch.readers.base import RecordSource
from emir_quality.core.errors import PhaseFailedError, RunCancelledError
from emir_quality.core.models import PipelineState, ReportRun, RunFailure, Schema, ScoreReport, ValidationPhase
from emir_quality.core.reference import load_currency_codes
from emir_quality.core.rules import RuleCatalog, RuleCatalogLoader
from emir_quality.core.schema import SchemaRegistry
from emir_quality.observability.logger import get_logger, log_operation
from emir_quality.observability.metrics import MetricsCollector, phase_duration_seconds, track_duration
from emir_quality.scoring.engine import ScoringEngine
from emir_quality.validation import (
    CompletenessValidator,
    DuplicatePolicy,
    FindingLedger,
    FormatValidator,
    LogicalValidator,
    PhaseResult,
    PhaseValidator,
    ShardedExecutor,
)
from emir_quality.warehouse.sinks import InMemoryResultSink, ResultSink

from .retry import RetryPolicy, run_with_retry
from .state_machine import RunStateMachine

if TYPE_CHECKING:
    from emir_quality.config.settings import PipelineSettings

logger = get_logger(__name__)

CANCELLED_REASON = "cancelled"


class PipelineOrchestrator:
    """
    Runs report batches through completeness, format, logical and scoring.

    One orchestrator can run many batches (sequentially); schema, catalog
    and validators are shared read-only between runs.
    """

    def __init__(
        self,
        schema: Schema,
        catalog: RuleCatalog,
        sink: ResultSink | None = None,
        currency_codes: frozenset[str] | None = None,
        shard_count: int = 4,
        batch_size: int = 1000,
        queue_size: int = 4,
        retry_policy: RetryPolicy | None = None,
        duplicate_policy: DuplicatePolicy | str = DuplicatePolicy.PER_GROUP,
        metrics: MetricsCollector | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            schema: Loaded schema
            catalog: Loaded rule catalog
            sink: Result sink (in-memory when omitted)
            currency_codes: ISO 4217 table for currency checks
            shard_count: Shards per phase
            batch_size: Records per micro-batch
            queue_size: Micro-batches buffered per shard
            retry_policy: Phase retry policy (3 retries by default)
            duplicate_policy: DUPLICATE_UTI reporting policy
            metrics: Metrics collector
            sleep: Backoff sleep (injectable for tests)

        Raises:
            RuleCatalogError: If the catalog cannot be bound to the schema
        """
        self.schema = schema
        self.catalog = catalog
        self.sink = sink if sink is not None else InMemoryResultSink()
        self.retry_policy = retry_policy or RetryPolicy()
        self.metrics = metrics or MetricsCollector()
        self.sleep = sleep
        self.executor = ShardedExecutor(
            shard_count=shard_count,
            batch_size=batch_size,
            queue_size=queue_size,
            metrics=self.metrics,
        )

        self.completeness = CompletenessValidator(schema)
        self.format = FormatValidator(schema, catalog, currency_codes, duplicate_policy)
        self.logical = LogicalValidator(schema, catalog)
        self.scoring = ScoringEngine(schema, catalog.severity_weights)

        self._lock = threading.Lock()
        self._signals: list[threading.Event] = []
        self._cancel = threading.Event()

    @classmethod
    def from_settings(
        cls,
        settings: "PipelineSettings",
        sink: ResultSink | None = None,
        metrics: MetricsCollector | None = None,
    ) -> "PipelineOrchestrator":
        """
        Load schema, rule catalog and reference tables named by the settings
        and build an orchestrator.

        Raises:
            SchemaLoadError: If the schema version cannot be loaded
            RuleCatalogError: If the catalog is invalid for the schema
        """
        schema = SchemaRegistry(settings.schema_dir).load(settings.schema_version)
        catalog = RuleCatalogLoader(settings.rules_path).load(schema)
        return cls(
            schema=schema,
            catalog=catalog,
            sink=sink,
            currency_codes=load_currency_codes(settings.reference_dir),
            shard_count=settings.shard_count,
            batch_size=settings.batch_size,
            queue_size=settings.queue_size,
            retry_policy=RetryPolicy(
                max_retries=settings.max_retries,
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
            ),
            duplicate_policy=settings.duplicate_uti_policy,
            metrics=metrics,
        )

    # =======================
    # PUBLIC API
    # =======================

    def run(self, source: RecordSource, report_date: date, execution_id: str | None = None) -> ReportRun:
        """
        Validate and score one report batch.

        Args:
            source: The batch (re-opened by every phase and retry)
            report_date: Report date of the batch
            execution_id: Explicit run id (a UUID is generated when omitted)

        Returns:
            The run in its terminal state (COMPLETED or FAILED)
        """
        run = ReportRun(report_date=report_date)
        if execution_id:
            run.execution_id = execution_id
        self._cancel = threading.Event()
        machine = RunStateMachine(run, self.sink)
        ledger = FindingLedger(run.execution_id, self.sink, self.metrics)
        unparseable = 0

        try:
            with log_operation("Report run", logger=logger, execution_id=run.execution_id,
                               report_date=report_date.isoformat()):
                machine.transition(PipelineState.COMPLETENESS)
                completeness = self._run_phase(self.completeness, source, ledger, self._cancel, run.execution_id)
                unparseable = completeness.unparseable_records

                machine.transition(PipelineState.FORMAT_AND_LOGICAL)
                format_result, logical_result = self._run_parallel(source, ledger, run.execution_id)
                unparseable = completeness.skipped_rows + format_result.excluded_records + logical_result.excluded_records

                machine.transition(PipelineState.SCORING, unparseable_records=unparseable)
                report = run_with_retry(
                    lambda: self._score_and_publish(ledger, completeness.records_processed, unparseable, run.execution_id),
                    phase=PipelineState.SCORING.value,
                    policy=self.retry_policy,
                    cancel=self._cancel,
                    sleep=self.sleep,
                    metrics=self.metrics,
                    execution_id=run.execution_id,
                )
                final = machine.transition(PipelineState.COMPLETED, overall_score=report.overall)
        except RunCancelledError:
            final = self._fail(machine, RunFailure(
                phase=machine.state,
                retry_count=0,
                error_type=RunCancelledError.__name__,
                error_message=CANCELLED_REASON,
            ), unparseable)
        except PhaseFailedError as e:
            final = self._fail(machine, RunFailure(
                phase=machine.state,
                branch=self._failed_branch(machine.state, e),
                retry_count=e.retry_count,
                error_type=type(e.first_error).__name__,
                error_message=str(e.first_error),
            ), unparseable)
        except Exception as e:
            final = self._fail(machine, RunFailure(
                phase=machine.state,
                retry_count=0,
                error_type=type(e).__name__,
                error_message=str(e),
            ), unparseable)

        score = final.overall_score.overall_accuracy_score if final.overall_score else None
        self.metrics.record_run_outcome(final.status.value, report_date.isoformat(), score)
        return final

    def cancel(self) -> None:
        """
        Ask the current run to stop.

        Shard workers finish the batch in hand; the run ends FAILED with
        reason "cancelled" and findings already recorded are kept.
        """
        with self._lock:
            self._cancel.set()
            for signal in self._signals:
                signal.set()

    # =======================
    # PHASES
    # =======================

    def _run_phase(
        self,
        validator: PhaseValidator,
        source: RecordSource,
        ledger: FindingLedger,
        cancel: threading.Event,
        execution_id: str,
    ) -> PhaseResult:
        phase = validator.phase.value

        def attempt() -> PhaseResult:
            with track_duration(phase_duration_seconds, phase=phase):
                return self.executor.run(source, validator, ledger, cancel)

        with log_operation(f"{phase} validation", logger=logger, execution_id=execution_id, phase=phase):
            result = run_with_retry(
                attempt,
                phase=phase,
                policy=self.retry_policy,
                cancel=cancel,
                sleep=self.sleep,
                metrics=self.metrics,
                execution_id=execution_id,
            )
        logger.info(
            f"{phase} validation finished",
            extra={"execution_id": execution_id, **result.model_dump(mode="json")},
        )
        return result

    def _run_parallel(self, source: RecordSource, ledger: FindingLedger, execution_id: str) -> tuple[PhaseResult, PhaseResult]:
        """
        Run format and logical validation concurrently and wait for both.

        When one branch fails, the other is cancelled and the failure is raised.
        """
        branch_stop = threading.Event()
        with self._lock:
            if self._cancel.is_set():
                branch_stop.set()
            self._signals.append(branch_stop)

        try:
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="phase") as pool:
                futures = [
                    pool.submit(self._run_phase, self.format, source, ledger, branch_stop, execution_id),
                    pool.submit(self._run_phase, self.logical, source, ledger, branch_stop, execution_id),
                ]
                done, _ = wait(futures, return_when=FIRST_EXCEPTION)
                if any(f.exception() is not None for f in done):
                    branch_stop.set()
                wait(futures)
        finally:
            with self._lock:
                self._signals.remove(branch_stop)

        errors = [f.exception() for f in futures if f.exception() is not None]
        phase_failures = [e for e in errors if isinstance(e, PhaseFailedError)]
        if phase_failures:
            raise phase_failures[0]
        if errors:
            raise errors[0]
        return futures[0].result(), futures[1].result()

    def _score_and_publish(
        self,
        ledger: FindingLedger,
        total_records: int,
        unparseable: int,
        execution_id: str,
    ) -> ScoreReport:
        with track_duration(phase_duration_seconds, phase=PipelineState.SCORING.value):
            report = self.scoring.score(ledger.findings(), total_records, unparseable)
            for record_score in report.record_scores:
                self.sink.put_record_score(execution_id, record_score)
            for field_score in report.field_scores:
                self.sink.put_field_score(execution_id, field_score)
            for category_score in report.category_scores:
                self.sink.put_category_score(execution_id, category_score)
            self.sink.put_overall_score(execution_id, report.overall)

        logger.info(
            f"Overall accuracy {report.overall.overall_accuracy_score} ({report.overall.traffic_light.value})",
            extra={"execution_id": execution_id, **report.overall.model_dump(mode="json")},
        )
        return report

    @staticmethod
    def _failed_branch(state: PipelineState, error: PhaseFailedError) -> ValidationPhase | None:
        if state is not PipelineState.FORMAT_AND_LOGICAL:
            return None
        return ValidationPhase(error.phase)

    def _fail(self, machine: RunStateMachine, failure: RunFailure, unparseable: int) -> ReportRun:
        logger.error(
            f"Run {machine.execution_id} failed in {failure.phase.value}: {failure.error_type}",
            extra={"execution_id": machine.execution_id, **failure.model_dump(mode="json")},
        )
        try:
            return machine.fail(failure, unparseable_records=unparseable)
        except Exception:
            logger.exception("Could not publish run failure", extra={"execution_id": machine.execution_id})
            return machine.snapshot()
