"""
Unit tests for the CSV report writer.
"""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from callbatch.jobs.models import JobStatus
from callbatch.reports.writer import OutputRow, ReportSchema, ReportWriter, format_cell
from callbatch.shared.exceptions import ReportWriteError

TS = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

FIXED_HEADER = ["Phone", "Status", "Service Status", "RecordUrl", "Job Status", "Errors"]


class TestReportSchema:
    def test_header_layout(self) -> None:
        schema = ReportSchema.from_fieldnames(["phone", "name", "city"])

        assert schema.header == FIXED_HEADER + ["Timestamp", "Key", "name", "city", "Extra"]

    def test_input_field_named_like_a_title_is_prefixed(self) -> None:
        schema = ReportSchema.from_fieldnames(["phone", "Timestamp"])

        assert "input.Timestamp" in schema.header

    def test_completed_row_rendering(self) -> None:
        schema = ReportSchema.from_fieldnames(["phone", "name"])
        row = OutputRow(
            timestamp=TS,
            key="job-1",
            job_status=JobStatus.COMPLETED,
            input={"phone": "+15550000001", "name": "Alice"},
            output={"status": "answered", "serviceStatus": "ok", "callback": True},
            record="https://rec.example.com/1.wav",
        )

        cells = dict(zip(schema.header, schema.render(row)))

        assert cells["Phone"] == "+15550000001"
        assert cells["Status"] == "answered"
        assert cells["Service Status"] == "ok"
        assert cells["RecordUrl"] == "https://rec.example.com/1.wav"
        assert cells["Job Status"] == "Completed"
        assert cells["Errors"] == ""
        assert cells["Timestamp"] == TS.isoformat()
        assert cells["Key"] == "job-1"
        assert cells["name"] == "Alice"
        assert json.loads(cells["Extra"]) == {"output": {"callback": True}}

    def test_null_input_and_output_give_empty_cells(self) -> None:
        schema = ReportSchema.from_fieldnames(["phone", "name"])
        row = OutputRow(timestamp=TS, key="job-x", job_status=JobStatus.REJECTED)

        cells = dict(zip(schema.header, schema.render(row)))

        assert cells["Job Status"] == "Rejected"
        assert cells["Phone"] == ""
        assert cells["name"] == ""
        assert cells["Extra"] == ""

    def test_output_field_does_not_overwrite_input_column(self) -> None:
        schema = ReportSchema.from_fieldnames(["phone", "name"])
        row = OutputRow(
            timestamp=TS,
            key="job-1",
            job_status=JobStatus.COMPLETED,
            input={"phone": "+15550000001", "name": "Alice"},
            output={"name": "Alicia"},
        )

        cells = dict(zip(schema.header, schema.render(row)))

        assert cells["name"] == "Alice"
        assert json.loads(cells["Extra"]) == {"output": {"name": "Alicia"}}

    def test_unknown_input_fields_land_in_extra(self) -> None:
        schema = ReportSchema.from_fieldnames(["phone"])
        row = OutputRow(
            timestamp=TS,
            key="job-1",
            job_status=JobStatus.TIMEOUT,
            input={"phone": "+15550000001", "vip": "yes"},
        )

        cells = dict(zip(schema.header, schema.render(row)))

        assert json.loads(cells["Extra"]) == {"input": {"vip": "yes"}}

    def test_metadata_wins_over_output(self) -> None:
        schema = ReportSchema()
        row = OutputRow(
            timestamp=TS,
            key="job-1",
            job_status=JobStatus.COMPLETED,
            output={"jobStatus": "whatever", "record": "other"},
            record="https://rec.example.com/1.wav",
        )

        cells = dict(zip(schema.header, schema.render(row)))

        assert cells["Job Status"] == "Completed"
        assert cells["RecordUrl"] == "https://rec.example.com/1.wav"


class TestFormatCell:
    def test_values(self) -> None:
        assert format_cell(None) == ""
        assert format_cell("x") == "x"
        assert format_cell(3) == "3"
        assert format_cell(False) == "false"
        assert format_cell({"a": [1, 2]}) == '{"a": [1, 2]}'


class TestReportWriter:
    def test_writes_header_on_open(self, tmp_path: Path, read_report) -> None:
        path = tmp_path / "report.csv"

        with ReportWriter(path, ReportSchema.from_fieldnames(["phone", "name"])):
            pass

        text = path.read_text(encoding="utf-8")
        assert text.splitlines()[0] == (
            '"Phone","Status","Service Status","RecordUrl","Job Status","Errors",'
            '"Timestamp","Key","name","Extra"'
        )
        assert read_report(path) == []

    def test_rows_are_quoted_and_appended_in_write_order(self, tmp_path: Path, read_report) -> None:
        path = tmp_path / "report.csv"
        writer = ReportWriter(path, ReportSchema.from_fieldnames(["phone"])).open()

        writer.write(OutputRow(timestamp=TS, key="b", job_status=JobStatus.TIMEOUT, input={"phone": "2"}))
        writer.write(OutputRow(timestamp=TS, key="a", job_status=JobStatus.FAILED, input={"phone": "1"}))

        # flushed without closing
        rows = read_report(path)
        writer.close()

        assert [r["Key"] for r in rows] == ["b", "a"]
        assert [r["Job Status"] for r in rows] == ["Timeout", "Failed"]
        assert writer.rows_written == 2
        assert path.read_text(encoding="utf-8").splitlines()[1].startswith('"2",""')

    def test_unwritable_sink_raises(self, tmp_path: Path) -> None:
        writer = ReportWriter(tmp_path / "missing-dir" / "report.csv")

        with pytest.raises(ReportWriteError):
            writer.open()

    def test_write_opens_lazily(self, tmp_path: Path, read_report) -> None:
        path = tmp_path / "report.csv"
        writer = ReportWriter(path)

        writer.write(OutputRow(timestamp=TS, key="k", job_status=JobStatus.REJECTED))
        writer.close()

        assert read_report(path)[0]["Key"] == "k"
