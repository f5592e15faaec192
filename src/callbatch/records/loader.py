"""
CSV loading for call records.

Each data row becomes an immutable InputRecord keyed by the header names,
in file order. Malformed input fails the whole load; rows are never skipped.
"""

import csv
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from callbatch.shared.exceptions import RecordLoadError, RecordParseError
from callbatch.shared.logging import get_logger

logger = get_logger(__name__)

InputRecord = Mapping[str, str]


class RecordLoader:
    """Loader for call record CSV files."""

    def __init__(
        self,
        delimiter: str = ",",
        quotechar: str = '"',
        encoding: str = "utf-8-sig",
    ) -> None:
        """Initialize the loader.

        Args:
            delimiter: CSV field delimiter.
            quotechar: CSV quote character.
            encoding: File encoding. The default drops a leading BOM.
        """
        self.delimiter = delimiter
        self.quotechar = quotechar
        self.encoding = encoding
        self.fieldnames: list[str] = []

    def load(self, path: str | Path) -> list[InputRecord]:
        """Read every record of the file at path.

        Raises:
            RecordLoadError: The file cannot be opened or read.
            RecordParseError: The header is missing or a row is malformed.
        """
        path = Path(path)
        try:
            handle = path.open("r", encoding=self.encoding, newline="")
        except OSError as e:
            raise RecordLoadError(f"Cannot open input file {path}: {e}", path=str(path)) from e

        with handle:
            try:
                return self._read(handle)
            except UnicodeDecodeError as e:
                raise RecordParseError(f"File encoding error: {e}") from e
            except OSError as e:
                raise RecordLoadError(f"Cannot read input file {path}: {e}", path=str(path)) from e

    def _read(self, handle) -> list[InputRecord]:
        reader = csv.reader(
            handle,
            delimiter=self.delimiter,
            quotechar=self.quotechar,
            strict=True,
        )

        try:
            header = next(reader, None)
        except csv.Error as e:
            raise RecordParseError(f"Malformed header: {e}", line_number=reader.line_num) from e

        if not header or not any(h.strip() for h in header):
            raise RecordParseError("CSV file is empty or has no headers", line_number=0)

        fieldnames = [h.strip() for h in header]
        duplicates = sorted({h for h in fieldnames if fieldnames.count(h) > 1})
        if duplicates:
            raise RecordParseError(
                f"Duplicate headers: {', '.join(duplicates)}",
                line_number=reader.line_num,
            )
        self.fieldnames = fieldnames

        records: list[InputRecord] = []
        while True:
            try:
                row = next(reader)
            except StopIteration:
                break
            except csv.Error as e:
                raise RecordParseError(
                    f"Malformed row at line {reader.line_num}: {e}",
                    line_number=reader.line_num,
                ) from e

            # csv.reader yields [] for blank lines
            if not row:
                continue

            if len(row) != len(fieldnames):
                raise RecordParseError(
                    f"Row at line {reader.line_num} has {len(row)} field(s), "
                    f"expected {len(fieldnames)}",
                    line_number=reader.line_num,
                )

            records.append(MappingProxyType(dict(zip(fieldnames, row))))

        logger.debug(
            "CSV records loaded",
            extra={"fieldnames": fieldnames, "record_count": len(records)},
        )
        return records


def load_records(
    path: str | Path,
    *,
    delimiter: str = ",",
    quotechar: str = '"',
    encoding: str = "utf-8-sig",
) -> list[InputRecord]:
    """Convenience wrapper around RecordLoader.load."""
    loader = RecordLoader(delimiter=delimiter, quotechar=quotechar, encoding=encoding)
    return loader.load(path)
