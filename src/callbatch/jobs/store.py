"""
In-memory correlation of job keys to the records they were created for.
"""

from __future__ import annotations

from typing import Iterator

from callbatch.records.loader import InputRecord
from callbatch.shared.exceptions import DuplicateKeyError


class CorrelationStore:
    """Map of live job key -> input record.

    A key is present exactly while its job is unresolved. Mutated only from
    the event loop, so no locking.
    """

    def __init__(self) -> None:
        self._records: dict[str, InputRecord] = {}
        self._peak_size = 0

    def put(self, key: str, record: InputRecord) -> None:
        if key in self._records:
            raise DuplicateKeyError(key)
        self._records[key] = record
        self._peak_size = max(self._peak_size, len(self._records))

    def get(self, key: str) -> InputRecord | None:
        return self._records.get(key)

    def remove(self, key: str) -> InputRecord | None:
        """Remove key and return its record. Absent keys are a no-op."""
        return self._records.pop(key, None)

    def size(self) -> int:
        return len(self._records)

    @property
    def peak_size(self) -> int:
        return self._peak_size

    def keys(self) -> list[str]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))
