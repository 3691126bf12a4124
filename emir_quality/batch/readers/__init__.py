"""
Record sources for report batches.

The Spark source is imported from ``spark_reader`` directly so that pyspark
is only loaded when it is used.
"""

from .base import InMemoryRecordSource, RecordSource, RecordStream, check_header
from .delimited_reader import DelimitedRecordSource

__all__ = [
    "InMemoryRecordSource",
    "RecordSource",
    "RecordStream",
    "check_header",
    "DelimitedRecordSource",
]
