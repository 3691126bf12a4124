"""
Structured logging and Prometheus metrics.
"""

from .logger import get_logger, log_operation, setup_logger
from .metrics import MetricsCollector

__all__ = [
    "MetricsCollector",
    "get_logger",
    "log_operation",
    "setup_logger",
]
