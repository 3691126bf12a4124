"""
Finding ledger: the append-only, idempotent store of a run's findings.
"""

import threading
from collections.abc import Iterable

from emir_quality.core.models import ValidationFinding, ValidationPhase
from emir_quality.observability.metrics import MetricsCollector
from emir_quality.warehouse.sinks import ResultSink


class FindingLedger:
    """
    Collects findings from all shard workers of a run.

    Keyed by ``finding_id``: re-delivering a finding (e.g. when a phase is
    retried) is a no-op. New findings are forwarded to the sink; a finding
    whose forward failed is forwarded again the next time it is added.
    """

    def __init__(self, execution_id: str, sink: ResultSink | None = None, metrics: MetricsCollector | None = None):
        """
        Initialize the ledger.

        Args:
            execution_id: Run the findings belong to
            sink: Sink receiving each new finding (optional)
            metrics: Metrics collector
        """
        self.execution_id = execution_id
        self.sink = sink
        self.metrics = metrics or MetricsCollector()
        self._lock = threading.Lock()
        self._findings: dict[str, ValidationFinding] = {}
        self._persisted: set[str] = set()

    def add(self, finding: ValidationFinding) -> bool:
        """
        Add a finding.

        Returns:
            True if the finding was not yet persisted

        Raises:
            PersistenceError: If forwarding to the sink fails
        """
        finding_id = finding.finding_id
        with self._lock:
            if finding_id in self._persisted:
                return False
            is_new = finding_id not in self._findings
            self._findings[finding_id] = finding

        if is_new:
            self.metrics.record_finding(finding.phase.value, finding.severity.value)
        if self.sink is not None:
            self.sink.put_finding(self.execution_id, finding)
        with self._lock:
            self._persisted.add(finding_id)
        return True

    def add_all(self, findings: Iterable[ValidationFinding]) -> int:
        return sum(1 for finding in findings if self.add(finding))

    def findings(self, phase: ValidationPhase | None = None) -> list[ValidationFinding]:
        """Snapshot of the findings, optionally restricted to one phase."""
        with self._lock:
            values = list(self._findings.values())
        if phase is None:
            return values
        return [f for f in values if f.phase == phase]

    def __len__(self) -> int:
        with self._lock:
            return len(self._findings)

    def __contains__(self, finding_id: object) -> bool:
        with self._lock:
            return finding_id in self._findings
