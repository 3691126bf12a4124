"""
Schema registry and field type parsing.
"""

from .field_types import as_date, parse_value
from .registry import EXPECTED_FIELD_COUNT, SchemaRegistry

__all__ = [
    "EXPECTED_FIELD_COUNT",
    "SchemaRegistry",
    "as_date",
    "parse_value",
]
