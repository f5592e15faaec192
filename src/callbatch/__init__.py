"""
callbatch: batch-schedule outbound AI phone calls from a CSV and report outcomes.
"""

__version__ = "0.1.0"
