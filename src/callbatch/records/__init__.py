"""
Call record input.
"""

from callbatch.records.loader import InputRecord, RecordLoader, load_records

__all__ = ["InputRecord", "RecordLoader", "load_records"]
