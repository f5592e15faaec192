"""
CSV report of resolved jobs.

One row per resolved job, appended in resolution order. The column set is
fixed when the report is opened:

    Phone, Status, Service Status, RecordUrl, Job Status, Errors,
    Timestamp, Key, <input header fields...>, Extra

Fixed columns are looked up in the coordinator metadata first, then the
conversation output, then the input record. Input fields not consumed by a
fixed column get a column of their own. Output fields not consumed by a
fixed column, and input fields the schema does not know, are serialized as a
JSON object in Extra, so nothing is dropped and result fields never overwrite
input columns.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO, Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

from callbatch.jobs.models import JobStatus
from callbatch.shared.exceptions import ReportWriteError
from callbatch.shared.logging import get_logger

logger = get_logger(__name__)

# (field id, column title)
FIXED_COLUMNS: tuple[tuple[str, str], ...] = (
    ("phone", "Phone"),
    ("status", "Status"),
    ("serviceStatus", "Service Status"),
    ("record", "RecordUrl"),
    ("jobStatus", "Job Status"),
    ("errors", "Errors"),
)
TIMESTAMP_COLUMN = "Timestamp"
KEY_COLUMN = "Key"
EXTRA_COLUMN = "Extra"

_FIXED_IDS = frozenset(field_id for field_id, _ in FIXED_COLUMNS)


class OutputRow(BaseModel):
    """One resolved job as it appears in the report."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(..., description="Event arrival time")
    key: str = Field(..., description="Job key")
    job_status: JobStatus
    input: dict[str, str] | None = Field(
        default=None,
        description="Originating input record, if still known",
    )
    output: dict[str, Any] | None = Field(
        default=None,
        description="Conversation output fields (completed jobs only)",
    )
    record: str | None = Field(default=None, description="Recording URL")
    errors: str | None = None

    def metadata(self) -> dict[str, Any]:
        """Coordinator supplied values for the fixed columns."""
        data: dict[str, Any] = {"jobStatus": self.job_status.value}
        if self.record is not None:
            data["record"] = self.record
        if self.errors is not None:
            data["errors"] = self.errors
        return data


def format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, ensure_ascii=False)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class ReportSchema:
    """Explicit column layout of the report."""

    input_fields: tuple[str, ...] = ()

    @classmethod
    def from_fieldnames(cls, fieldnames: Iterable[str]) -> "ReportSchema":
        return cls(input_fields=tuple(f for f in fieldnames if f not in _FIXED_IDS))

    def _input_title(self, name: str) -> str:
        reserved = {title for _, title in FIXED_COLUMNS} | {TIMESTAMP_COLUMN, KEY_COLUMN, EXTRA_COLUMN}
        return f"input.{name}" if name in reserved else name

    @property
    def header(self) -> list[str]:
        return (
            [title for _, title in FIXED_COLUMNS]
            + [TIMESTAMP_COLUMN, KEY_COLUMN]
            + [self._input_title(name) for name in self.input_fields]
            + [EXTRA_COLUMN]
        )

    def render(self, row: OutputRow) -> list[str]:
        """Flatten an OutputRow into cells matching header."""
        metadata = row.metadata()
        output = row.output or {}
        input_record = row.input or {}

        cells: list[str] = []
        for field_id, _ in FIXED_COLUMNS:
            if field_id in metadata:
                value = metadata[field_id]
            elif field_id in output:
                value = output[field_id]
            else:
                value = input_record.get(field_id)
            cells.append(format_cell(value))

        cells.append(row.timestamp.isoformat())
        cells.append(row.key)

        for name in self.input_fields:
            cells.append(format_cell(input_record.get(name)))

        extra: dict[str, Any] = {}
        leftover_output = {k: v for k, v in output.items() if k not in _FIXED_IDS}
        if leftover_output:
            extra["output"] = leftover_output
        known_input = _FIXED_IDS.union(self.input_fields)
        unknown_input = {k: v for k, v in input_record.items() if k not in known_input}
        if unknown_input:
            extra["input"] = unknown_input
        cells.append(format_cell(extra) if extra else "")

        return cells


class ReportWriter:
    """Append-only CSV sink for OutputRows.

    The file is opened once and every row is flushed as soon as it is
    written. Sink failures raise ReportWriteError and are not recovered.
    """

    def __init__(
        self,
        path: str | Path,
        schema: ReportSchema | None = None,
        encoding: str = "utf-8",
    ) -> None:
        self.path = Path(path)
        self.schema = schema or ReportSchema()
        self.encoding = encoding
        self.rows_written = 0
        self._handle: IO[str] | None = None
        self._writer: Any = None

    def open(self) -> "ReportWriter":
        if self._handle is not None:
            return self
        try:
            self._handle = self.path.open("w", encoding=self.encoding, newline="")
            self._writer = csv.writer(self._handle, quoting=csv.QUOTE_ALL)
            self._writer.writerow(self.schema.header)
            self._handle.flush()
        except OSError as e:
            raise ReportWriteError(f"Cannot open report file {self.path}: {e}", path=str(self.path)) from e

        logger.info("Report file opened", extra={"path": str(self.path)})
        return self

    def _sink(self) -> tuple[IO[str], Any]:
        if self._handle is None:
            self.open()
        if self._handle is None or self._writer is None:
            raise ReportWriteError(f"Report file {self.path} is not open", path=str(self.path))
        return self._handle, self._writer

    def write(self, row: OutputRow) -> None:
        handle, writer = self._sink()
        try:
            writer.writerow(self.schema.render(row))
            handle.flush()
        except OSError as e:
            raise ReportWriteError(f"Cannot write report file {self.path}: {e}", path=str(self.path)) from e

        self.rows_written += 1
        logger.debug(
            "Report row written",
            extra={"key": row.key, "job_status": row.job_status.value},
        )

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            self._writer = None

    def __enter__(self) -> "ReportWriter":
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()
