"""
Record source interface.

A RecordSource is a re-openable, immutable snapshot of one report batch.
Every phase (and every retry of a phase) opens its own RecordStream and
reads the batch from the start.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import date

from emir_quality.core.errors import SchemaMismatchError
from emir_quality.core.models import Schema, TradeRecord


class RecordStream(ABC):
    """
    Sequential reader over one opening of a source.

    Attributes:
        unparseable_rows: Rows skipped so far because they could not be parsed
    """

    def __init__(self):
        self.unparseable_rows = 0

    @abstractmethod
    def next(self, batch_size: int) -> tuple[list[TradeRecord], bool]:
        """
        Read up to ``batch_size`` records.

        Returns:
            (records, end_of_stream)

        Raises:
            SourceReadError: On I/O failure
        """

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class RecordSource(ABC):
    """A batch of trade records that can be read any number of times."""

    @abstractmethod
    def open(self) -> RecordStream:
        """
        Open a new stream positioned at the first record.

        Raises:
            SchemaMismatchError: If the source layout does not match the schema
            SourceReadError: If the source cannot be read
        """


def check_header(schema: Schema, header: Sequence[str]) -> None:
    """
    Require the header to list exactly the schema's field names, in order.

    Raises:
        SchemaMismatchError: Naming the missing and unexpected columns
    """
    columns = [column.strip() for column in header]
    expected = list(schema.field_names)
    if columns == expected:
        return

    missing = [name for name in expected if name not in set(columns)]
    unexpected = [name for name in columns if name not in schema]
    if not missing and not unexpected:
        message = f"Header columns are out of order for schema {schema.version}"
    else:
        message = (
            f"Header does not match schema {schema.version}: "
            f"{len(missing)} missing, {len(unexpected)} unexpected column(s)"
        )
    raise SchemaMismatchError(message, missing=missing, unexpected=unexpected)


def build_record(schema: Schema, values: Sequence[str | None], report_date: date, row_number: int) -> TradeRecord:
    """Build a TradeRecord from a row already known to have one value per field."""
    mapped = dict(zip(schema.field_names, values))
    uti = (mapped.get("uti") or "").strip()
    return TradeRecord(uti=uti, report_date=report_date, row_number=row_number, values=mapped)


class _ListStream(RecordStream):
    def __init__(self, records: Sequence[TradeRecord]):
        super().__init__()
        self._records = records
        self._position = 0

    def next(self, batch_size: int) -> tuple[list[TradeRecord], bool]:
        batch = list(self._records[self._position:self._position + batch_size])
        self._position += len(batch)
        return batch, self._position >= len(self._records)


class InMemoryRecordSource(RecordSource):
    """Record source over records already in memory (tests, embedding)."""

    def __init__(self, records: Iterable[TradeRecord]):
        self.records = tuple(records)

    @classmethod
    def from_rows(cls, rows: Iterable[dict[str, str | None]], report_date: date) -> "InMemoryRecordSource":
        """
        Build a source from field-name -> value mappings.

        Row numbers are assigned 1-based in iteration order.
        """
        records = []
        for row_number, values in enumerate(rows, start=1):
            uti = (values.get("uti") or "").strip()
            records.append(TradeRecord(uti=uti, report_date=report_date, row_number=row_number, values=dict(values)))
        return cls(records)

    def open(self) -> RecordStream:
        return _ListStream(self.records)

    def __len__(self) -> int:
        return len(self.records)
