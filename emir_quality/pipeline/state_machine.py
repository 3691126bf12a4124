"""
Finite-state machine owning a ReportRun.

The machine is the only writer of the run: every state change goes through
``transition`` (guarded by a lock), is checked against an explicit table,
stamped with a timestamp and forwarded to the result sink.
"""

import threading
from collections.abc import Callable
from datetime import datetime, timezone

from emir_quality.core.errors import InvalidTransitionError
from emir_quality.core.models import OverallScore, PipelineState, ReportRun, RunFailure
from emir_quality.observability.logger import get_logger
from emir_quality.warehouse.sinks import ResultSink

logger = get_logger(__name__)

TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.INITIATED: frozenset({PipelineState.COMPLETENESS, PipelineState.FAILED}),
    PipelineState.COMPLETENESS: frozenset({PipelineState.FORMAT_AND_LOGICAL, PipelineState.FAILED}),
    PipelineState.FORMAT_AND_LOGICAL: frozenset({PipelineState.SCORING, PipelineState.FAILED}),
    PipelineState.SCORING: frozenset({PipelineState.COMPLETED, PipelineState.FAILED}),
    PipelineState.COMPLETED: frozenset(),
    PipelineState.FAILED: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStateMachine:
    """
    Drives a ReportRun through INITIATED -> COMPLETENESS -> FORMAT_AND_LOGICAL
    -> SCORING -> COMPLETED, with FAILED reachable from any non-terminal state.
    """

    def __init__(self, run: ReportRun, sink: ResultSink | None = None, clock: Callable[[], datetime] = _utcnow):
        """
        Take ownership of a new run and publish it.

        Args:
            run: Run in state INITIATED
            sink: Sink receiving the run row and status changes
            clock: Timestamp source (injectable for tests)
        """
        if run.state is not PipelineState.INITIATED:
            raise InvalidTransitionError(f"A new run must be INITIATED, got {run.state.value}")
        self._run = run
        self._sink = sink
        self._clock = clock
        self._lock = threading.Lock()

        run.transitions[PipelineState.INITIATED] = clock()
        if sink is not None:
            sink.put_report_run(run)
            sink.update_report_run_status(run.execution_id, run.status, run.transitions[PipelineState.INITIATED])

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return self._run.state

    @property
    def execution_id(self) -> str:
        return self._run.execution_id

    def can_transition(self, target: PipelineState) -> bool:
        with self._lock:
            return target in TRANSITIONS[self._run.state]

    def transition(
        self,
        target: PipelineState,
        overall_score: OverallScore | None = None,
        failure: RunFailure | None = None,
        unparseable_records: int | None = None,
    ) -> ReportRun:
        """
        Move the run to ``target``.

        Args:
            target: Next state
            overall_score: Final score (COMPLETED only)
            failure: Failure details (FAILED only)
            unparseable_records: Rows excluded from evaluation

        Returns:
            Snapshot of the run after the transition

        Raises:
            InvalidTransitionError: If the table does not allow the move
        """
        with self._lock:
            current = self._run.state
            if target not in TRANSITIONS[current]:
                raise InvalidTransitionError(f"Illegal transition {current.value} -> {target.value}")
            if overall_score is not None and target is not PipelineState.COMPLETED:
                raise InvalidTransitionError("An overall score can only be set on COMPLETED")

            previous_status = self._run.status
            timestamp = self._clock()
            self._run.state = target
            self._run.transitions[target] = timestamp
            if overall_score is not None:
                self._run.overall_score = overall_score
            if failure is not None:
                self._run.failure = failure
            if unparseable_records is not None:
                self._run.unparseable_records = unparseable_records
            snapshot = self._run.model_copy(deep=True)

        logger.info(
            f"Run {snapshot.execution_id}: {current.value} -> {target.value}",
            extra={"execution_id": snapshot.execution_id, "from_state": current.value, "to_state": target.value},
        )
        if self._sink is not None:
            if snapshot.status != previous_status:
                self._sink.update_report_run_status(snapshot.execution_id, snapshot.status, timestamp)
            if target.is_terminal:
                self._sink.put_report_run(snapshot)
        return snapshot

    def fail(self, failure: RunFailure, unparseable_records: int | None = None) -> ReportRun:
        return self.transition(PipelineState.FAILED, failure=failure, unparseable_records=unparseable_records)

    def snapshot(self) -> ReportRun:
        with self._lock:
            return self._run.model_copy(deep=True)
