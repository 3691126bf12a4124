"""
Sharded, back-pressured execution of a validation phase.

A producer (the calling thread) reads micro-batches from a fresh record
stream and routes each record to shard ``crc32(uti) % shard_count``. Each
shard has a bounded queue and one worker thread, so memory stays bounded by
``shard_count x queue_size x batch_size`` records and a slow shard blocks the
producer instead of growing a buffer.
"""

import queue
import threading
import zlib
from typing import Any

from emir_quality.batch.readers.base import RecordSource
from emir_quality.core.errors import RecordParseError, RunCancelledError
from emir_quality.core.models import TradeRecord
from emir_quality.observability.logger import get_logger
from emir_quality.observability.metrics import MetricsCollector

from .base import PhaseResult, PhaseValidator
from .ledger import FindingLedger

logger = get_logger(__name__)

_END = object()
_POLL_SECONDS = 0.05


def shard_for(uti: str, shard_count: int) -> int:
    """Stable shard of a UTI; identical across processes and runs."""
    return zlib.crc32(uti.encode("utf-8")) % shard_count


class _ShardWorker(threading.Thread):
    """Consumes one shard's queue until the end marker or a stop signal."""

    def __init__(self, index: int, executor: "ShardedExecutor", validator: PhaseValidator,
                 ledger: FindingLedger, stop: threading.Event, cancel: threading.Event):
        super().__init__(name=f"{validator.phase.value.lower()}-shard-{index}", daemon=True)
        self.index = index
        self.executor = executor
        self.validator = validator
        self.ledger = ledger
        self.stop = stop
        self.cancel = cancel
        self.inbox: queue.Queue = queue.Queue(maxsize=executor.queue_size)
        self.state = validator.new_shard_state()
        self.processed = 0
        self.excluded = 0
        self.added = 0
        self.error: BaseException | None = None

    def run(self) -> None:
        try:
            while True:
                try:
                    batch = self.inbox.get(timeout=_POLL_SECONDS)
                except queue.Empty:
                    if self._halted():
                        return
                    continue
                if batch is _END:
                    return
                self._process(batch)
                if self._halted():
                    return
        except BaseException as e:
            self.error = e
            self.stop.set()

    def _halted(self) -> bool:
        return self.stop.is_set() or self.cancel.is_set()

    def _process(self, batch: list[TradeRecord]) -> None:
        phase = self.validator.phase.value
        excluded_before = self.excluded
        for record in batch:
            try:
                findings = self.validator.validate_record(record, self.state)
            except RecordParseError as e:
                self.excluded += 1
                logger.debug(
                    "Record excluded from phase",
                    extra={"phase": phase, "record_id": record.record_id, "error_message": str(e)},
                )
                continue
            self.added += self.ledger.add_all(findings)
        self.processed += len(batch)
        self.executor.metrics.record_batch(phase, len(batch))
        self.executor.metrics.record_unparseable(phase, self.excluded - excluded_before)


class ShardedExecutor:
    """
    Runs a PhaseValidator over a RecordSource across shard worker threads.
    """

    def __init__(
        self,
        shard_count: int = 4,
        batch_size: int = 1000,
        queue_size: int = 4,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the executor.

        Args:
            shard_count: Number of shards (and worker threads)
            batch_size: Records per read and per shard micro-batch
            queue_size: Micro-batches each shard queue holds before the producer blocks
            metrics: Metrics collector
        """
        if shard_count < 1:
            raise ValueError("shard_count must be >= 1")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self.shard_count = shard_count
        self.batch_size = batch_size
        self.queue_size = queue_size
        self.metrics = metrics or MetricsCollector()

    def run(
        self,
        source: RecordSource,
        validator: PhaseValidator,
        ledger: FindingLedger,
        cancel: threading.Event | None = None,
    ) -> PhaseResult:
        """
        Evaluate every record of the source.

        Args:
            source: Batch to read (a new stream is opened)
            validator: Phase to apply
            ledger: Where findings are added
            cancel: Run-wide cancellation signal; workers finish the batch in
                hand and stop

        Returns:
            PhaseResult with counts for this attempt

        Raises:
            RunCancelledError: If the cancel signal was set
            Any error raised by the source or a worker (first one wins)
        """
        cancel = cancel or threading.Event()
        stop = threading.Event()
        workers = [_ShardWorker(i, self, validator, ledger, stop, cancel) for i in range(self.shard_count)]
        for worker in workers:
            worker.start()

        source_unparseable = 0
        producer_error: BaseException | None = None
        try:
            with source.open() as stream:
                self._produce(stream, workers, stop, cancel)
                source_unparseable = stream.unparseable_rows
        except BaseException as e:
            producer_error = e
            stop.set()
        finally:
            for worker in workers:
                self._put(worker, _END, stop)
            for worker in workers:
                worker.join()

        worker_errors = [w.error for w in workers if w.error is not None]
        if worker_errors:
            raise worker_errors[0]
        if producer_error is not None:
            raise producer_error
        if cancel.is_set():
            raise RunCancelledError(f"{validator.phase.value} cancelled")

        self.metrics.record_unparseable(validator.phase.value, source_unparseable)
        result = PhaseResult(
            phase=validator.phase,
            records_processed=sum(w.processed for w in workers),
            skipped_rows=source_unparseable,
            excluded_records=sum(w.excluded for w in workers),
            findings_added=sum(w.added for w in workers),
        )
        logger.debug(
            f"{validator.phase.value} shards finished",
            extra={"phase": validator.phase.value, "shards": self.shard_count, **result.model_dump(mode="json")},
        )
        return result

    def _produce(self, stream, workers: list[_ShardWorker], stop: threading.Event, cancel: threading.Event) -> None:
        buffers: list[list[TradeRecord]] = [[] for _ in workers]
        end_of_stream = False
        while not end_of_stream:
            if cancel.is_set():
                stop.set()
            if stop.is_set():
                return
            records, end_of_stream = stream.next(self.batch_size)
            for record in records:
                shard = shard_for(record.uti, self.shard_count)
                buffers[shard].append(record)
                if len(buffers[shard]) >= self.batch_size:
                    self._put(workers[shard], buffers[shard], stop)
                    buffers[shard] = []

        for worker, buffer in zip(workers, buffers):
            if buffer:
                self._put(worker, buffer, stop)

    @staticmethod
    def _put(worker: _ShardWorker, item: Any, stop: threading.Event) -> None:
        """Blocking put that gives up once the run is stopping or the worker is gone."""
        while worker.is_alive():
            try:
                worker.inbox.put(item, timeout=_POLL_SECONDS)
                return
            except queue.Full:
                if stop.is_set() and item is not _END:
                    return
