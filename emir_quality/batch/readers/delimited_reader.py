"""
Delimited text reader for EMIR report files.
"""

import csv
from datetime import date
from pathlib import Path

from emir_quality.core.errors import RecordParseError, SourceReadError
from emir_quality.core.models import Schema, TradeRecord
from emir_quality.observability.logger import get_logger

from .base import RecordSource, RecordStream, build_record, check_header

logger = get_logger(__name__)


class DelimitedRecordStream(RecordStream):
    """
    Streams records from an open delimited file.

    Rows whose column count differs from the schema, or that hold bytes not
    valid in the file encoding, are skipped and counted in
    ``unparseable_rows``. Undecodable bytes are carried through the csv
    reader as surrogate escapes and rejected row by row.
    """

    def __init__(self, path: Path, schema: Schema, report_date: date, delimiter: str, encoding: str):
        super().__init__()
        self.path = path
        self.schema = schema
        self.report_date = report_date
        self.encoding = encoding
        self.row_number = 0

        try:
            self._file = open(path, newline="", encoding=encoding, errors="surrogateescape")
        except OSError as e:
            raise SourceReadError(f"Cannot open {path}: {e}") from e

        try:
            self._reader = csv.reader(self._file, delimiter=delimiter)
            header = next(self._reader, None)
            if header is None:
                header = []
            check_header(schema, header)
        except (OSError, csv.Error) as e:
            self._file.close()
            raise SourceReadError(f"Cannot read header of {path}: {e}") from e
        except Exception:
            self._file.close()
            raise

    def next(self, batch_size: int) -> tuple[list[TradeRecord], bool]:
        records: list[TradeRecord] = []
        while len(records) < batch_size:
            try:
                row = next(self._reader, None)
            except (OSError, csv.Error) as e:
                raise SourceReadError(f"Failed reading {self.path} after row {self.row_number}: {e}") from e

            if row is None:
                return records, True
            if not row:
                continue

            self.row_number += 1
            try:
                records.append(self._parse_row(row))
            except RecordParseError as e:
                self.unparseable_rows += 1
                logger.warning(
                    "Skipping unparseable row",
                    extra={"path": str(self.path), "row_number": self.row_number, "error_message": str(e)},
                )
        return records, False

    def _parse_row(self, row: list[str]) -> TradeRecord:
        if len(row) != len(self.schema):
            raise RecordParseError(
                f"Row {self.row_number} has {len(row)} columns, expected {len(self.schema)}",
                record_id=f"row#{self.row_number}",
            )
        for position, value in enumerate(row):
            try:
                value.encode(self.encoding)
            except UnicodeEncodeError as e:
                raise RecordParseError(
                    f"Row {self.row_number} has bytes that are not valid {self.encoding} "
                    f"in column {self.schema.field_names[position]}",
                    record_id=f"row#{self.row_number}",
                    field_name=self.schema.field_names[position],
                ) from e
        return build_record(self.schema, row, self.report_date, self.row_number)

    def close(self) -> None:
        self._file.close()


class DelimitedRecordSource(RecordSource):
    """
    Reads a delimited text file whose header row lists the schema's field
    names in schema order.
    """

    def __init__(
        self,
        path: str | Path,
        schema: Schema,
        report_date: date,
        delimiter: str = ",",
        encoding: str = "utf-8",
    ):
        """
        Initialize the source.

        Args:
            path: File to read
            schema: Schema the header must match
            report_date: Report date stamped on every record
            delimiter: Field delimiter
            encoding: File encoding
        """
        self.path = Path(path)
        self.schema = schema
        self.report_date = report_date
        self.delimiter = delimiter
        self.encoding = encoding

    def open(self) -> DelimitedRecordStream:
        return DelimitedRecordStream(self.path, self.schema, self.report_date, self.delimiter, self.encoding)
