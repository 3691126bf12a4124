"""
Unit tests for record sources.
"""

from datetime import date

import pytest

from emir_quality.batch.readers import DelimitedRecordSource, InMemoryRecordSource, check_header
from emir_quality.core.errors import SchemaMismatchError, SourceReadError

REPORT_DATE = date(2025, 9, 25)


def read_all(source, batch_size=10):
    records = []
    with source.open() as stream:
        done = False
        while not done:
            batch, done = stream.next(batch_size)
            records.extend(batch)
        return records, stream.unparseable_rows


@pytest.mark.unit
class TestCheckHeader:
    """Tests for header validation"""

    def test_exact_header(self, schema):
        check_header(schema, list(schema.field_names))

    def test_surrounding_whitespace_ignored(self, schema):
        check_header(schema, [f" {name} " for name in schema.field_names])

    def test_out_of_order(self, schema):
        header = list(schema.field_names)
        header[0], header[1] = header[1], header[0]

        with pytest.raises(SchemaMismatchError, match="out of order") as exc_info:
            check_header(schema, header)

        assert exc_info.value.missing == []
        assert exc_info.value.unexpected == []

    def test_missing_and_unexpected(self, schema):
        header = list(schema.field_names)
        header[-1] = "maturity"

        with pytest.raises(SchemaMismatchError) as exc_info:
            check_header(schema, header)

        assert exc_info.value.missing == [schema.field_names[-1]]
        assert exc_info.value.unexpected == ["maturity"]


@pytest.mark.unit
class TestDelimitedRecordSource:
    """Tests for DelimitedRecordSource"""

    def test_reads_records_in_order(self, schema, write_report, make_values):
        path = write_report([make_values("UTI1"), make_values("UTI2"), make_values("UTI3")])

        records, unparseable = read_all(DelimitedRecordSource(path, schema, REPORT_DATE), batch_size=2)

        assert [r.uti for r in records] == ["UTI1", "UTI2", "UTI3"]
        assert [r.row_number for r in records] == [1, 2, 3]
        assert records[0].report_date == REPORT_DATE
        assert records[0].raw("counterparty_1") == make_values()["counterparty_1"]
        assert unparseable == 0

    def test_wrong_column_count_is_skipped_and_counted(self, schema, write_report, make_values):
        path = write_report([make_values("UTI1"), ["UTI2", "too", "short"], make_values("UTI3")])

        records, unparseable = read_all(DelimitedRecordSource(path, schema, REPORT_DATE))

        assert [r.uti for r in records] == ["UTI1", "UTI3"]
        assert [r.row_number for r in records] == [1, 3]
        assert unparseable == 1

    def test_undecodable_row_is_skipped_and_counted(self, schema, write_report, make_values):
        path = write_report([make_values("UTI1"), make_values("UTI2"), make_values("UTI3")])
        path.write_bytes(path.read_bytes().replace(b"UTI2", b"UTI\xff2", 1))

        records, unparseable = read_all(DelimitedRecordSource(path, schema, REPORT_DATE))

        assert [r.uti for r in records] == ["UTI1", "UTI3"]
        assert [r.row_number for r in records] == [1, 3]
        assert unparseable == 1

    def test_blank_lines_skipped(self, schema, tmp_path, make_values):
        path = tmp_path / "report.csv"
        row = ",".join(make_values("UTI1")[name] for name in schema.field_names)
        path.write_text(",".join(schema.field_names) + "\n\n" + row + "\n\n")

        records, unparseable = read_all(DelimitedRecordSource(path, schema, REPORT_DATE))

        assert len(records) == 1
        assert unparseable == 0

    def test_header_mismatch_raises_on_open(self, schema, write_report):
        header = list(reversed(schema.field_names))
        path = write_report([], header=header)

        with pytest.raises(SchemaMismatchError, match="out of order"):
            DelimitedRecordSource(path, schema, REPORT_DATE).open()

    def test_empty_file_is_header_mismatch(self, schema, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("")

        with pytest.raises(SchemaMismatchError):
            DelimitedRecordSource(path, schema, REPORT_DATE).open()

    def test_missing_file_is_source_read_error(self, schema, tmp_path):
        with pytest.raises(SourceReadError):
            DelimitedRecordSource(tmp_path / "missing.csv", schema, REPORT_DATE).open()

    def test_source_can_be_reopened(self, schema, write_report, make_values):
        source = DelimitedRecordSource(write_report([make_values("UTI1")]), schema, REPORT_DATE)

        first, _ = read_all(source)
        second, _ = read_all(source)

        assert [r.record_id for r in first] == [r.record_id for r in second] == ["UTI1#1"]

    def test_pipe_delimiter(self, schema, tmp_path, make_values):
        path = tmp_path / "report.psv"
        row = "|".join(make_values("UTI1")[name] for name in schema.field_names)
        path.write_text("|".join(schema.field_names) + "\n" + row + "\n")

        records, _ = read_all(DelimitedRecordSource(path, schema, REPORT_DATE, delimiter="|"))

        assert [r.uti for r in records] == ["UTI1"]


@pytest.mark.unit
class TestInMemoryRecordSource:
    """Tests for InMemoryRecordSource"""

    def test_from_rows(self):
        source = InMemoryRecordSource.from_rows([{"uti": " A "}, {"uti": "B"}], REPORT_DATE)

        records, _ = read_all(source, batch_size=1)

        assert len(source) == 2
        assert [r.record_id for r in records] == ["A#1", "B#2"]

    def test_empty_source(self):
        with InMemoryRecordSource([]).open() as stream:
            assert stream.next(10) == ([], True)
