"""
Result store: connection pool and result sinks.
"""

from .sinks import InMemoryResultSink, ResultSink, RetryingResultSink

__all__ = [
    "InMemoryResultSink",
    "ResultSink",
    "RetryingResultSink",
]
