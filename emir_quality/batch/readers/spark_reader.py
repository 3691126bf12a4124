"""
Spark-backed record source for report files on distributed storage.

Spark does the distributed read; lines are streamed to the driver with
``toLocalIterator`` and split there with the same rules as the delimited
reader, so column-count errors are detected identically. Records must not
contain embedded line breaks.
"""

import csv
from datetime import date

from pyspark.errors import AnalysisException
from pyspark.sql import DataFrame, SparkSession

from emir_quality.core.errors import SourceReadError
from emir_quality.core.models import Schema, TradeRecord
from emir_quality.observability.logger import get_logger

from .base import RecordSource, RecordStream, build_record, check_header

logger = get_logger(__name__)


def split_line(line: str, delimiter: str) -> list[str]:
    return next(csv.reader([line], delimiter=delimiter), [])


class SparkRecordStream(RecordStream):
    """
    Streams text lines of a DataFrame (``value`` column) as records.

    The first line is the header.
    """

    def __init__(self, df: DataFrame, schema: Schema, report_date: date, delimiter: str):
        super().__init__()
        self.schema = schema
        self.report_date = report_date
        self.delimiter = delimiter
        self.row_number = 0
        self._lines = df.toLocalIterator()

        header = self._next_line()
        check_header(schema, split_line(header, delimiter) if header is not None else [])

    def _next_line(self) -> str | None:
        try:
            row = next(self._lines, None)
        except Exception as e:
            raise SourceReadError(f"Spark read failed after row {self.row_number}: {e}") from e
        return None if row is None else row["value"]

    def next(self, batch_size: int) -> tuple[list[TradeRecord], bool]:
        records: list[TradeRecord] = []
        while len(records) < batch_size:
            line = self._next_line()
            if line is None:
                return records, True
            if not line.strip():
                continue

            self.row_number += 1
            values = split_line(line, self.delimiter)
            if len(values) != len(self.schema):
                self.unparseable_rows += 1
                logger.warning(
                    "Skipping unparseable row",
                    extra={
                        "row_number": self.row_number,
                        "error_message": f"{len(values)} columns, expected {len(self.schema)}",
                    },
                )
                continue
            records.append(build_record(self.schema, values, self.report_date, self.row_number))
        return records, False


class SparkRecordSource(RecordSource):
    """
    Reads the delimited report format with Spark.

    Every column is read as a string; typing is the validators' job.
    """

    def __init__(
        self,
        spark: SparkSession,
        path: str,
        schema: Schema,
        report_date: date,
        delimiter: str = ",",
    ):
        """
        Initialize the source.

        Args:
            spark: Active Spark session
            path: File path or URI readable by Spark
            schema: Schema the header must match
            report_date: Report date stamped on every record
            delimiter: Field delimiter
        """
        self.spark = spark
        self.path = path
        self.schema = schema
        self.report_date = report_date
        self.delimiter = delimiter

    def open(self) -> SparkRecordStream:
        try:
            df = self.spark.read.text(self.path)
        except AnalysisException as e:
            raise SourceReadError(f"Cannot read {self.path}: {e}") from e
        return SparkRecordStream(df, self.schema, self.report_date, self.delimiter)
