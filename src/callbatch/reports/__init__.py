"""
Outcome reporting.
"""

from callbatch.reports.writer import OutputRow, ReportSchema, ReportWriter

__all__ = ["OutputRow", "ReportSchema", "ReportWriter"]
