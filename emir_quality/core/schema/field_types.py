"""
Type-specific parsing for the closed set of field data types.

Each DataType variant maps to one parser taking the raw string and returning
the typed value or raising ValueError. Parsers never see empty values: an
empty value is "absent" and is filtered out before parsing.
"""

import re
from collections.abc import Callable
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from emir_quality.core.models import DataType

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ISO_TIMESTAMP_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d{1,9})?)?(Z|[+-]\d{2}:?\d{2})?$"
)

TRUE_VALUES = ("true",)
FALSE_VALUES = ("false",)


def parse_string(raw: str) -> str:
    return raw


def parse_date(raw: str) -> date:
    """Parse an ISO-8601 calendar date (YYYY-MM-DD)."""
    value = raw.strip()
    if not ISO_DATE_PATTERN.match(value):
        raise ValueError(f"'{raw}' is not an ISO-8601 date")
    return date.fromisoformat(value)


def parse_timestamp(raw: str) -> datetime:
    """
    Parse an ISO-8601 timestamp.

    A trailing ``Z`` is read as UTC; naive timestamps are assumed UTC so that
    comparisons between fields never mix aware and naive values.
    """
    value = raw.strip()
    if not ISO_TIMESTAMP_PATTERN.match(value):
        raise ValueError(f"'{raw}' is not an ISO-8601 timestamp")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    # Python < 3.11 rejects offsets without a colon and fractions that are not 3 or 6 digits
    parsed = datetime.fromisoformat(_normalize_fraction(_normalize_offset(value)))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_decimal(raw: str) -> Decimal:
    """Parse a finite decimal number."""
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as e:
        raise ValueError(f"'{raw}' is not a decimal number") from e
    if not value.is_finite():
        raise ValueError(f"'{raw}' is not a finite decimal number")
    return value


def parse_boolean(raw: str) -> bool:
    """Parse a boolean flag (``true``/``false``, case-insensitive)."""
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ValueError(f"Cannot parse '{raw}' as boolean")


PARSERS: dict[DataType, Callable[[str], Any]] = {
    DataType.STRING: parse_string,
    DataType.DATE: parse_date,
    DataType.TIMESTAMP: parse_timestamp,
    DataType.DECIMAL: parse_decimal,
    DataType.BOOLEAN: parse_boolean,
}


def parse_value(data_type: DataType, raw: str) -> Any:
    """
    Parse a raw value according to its data type.

    Raises:
        ValueError: If the value does not parse as the given type
    """
    return PARSERS[data_type](raw)


def as_date(value: date | datetime) -> date:
    """Reduce a timestamp to its calendar date so dates and timestamps compare."""
    if isinstance(value, datetime):
        return value.date()
    return value


def _normalize_offset(value: str) -> str:
    match = re.search(r"([+-])(\d{2})(\d{2})$", value)
    if match:
        return value[: match.start()] + f"{match.group(1)}{match.group(2)}:{match.group(3)}"
    return value


def _normalize_fraction(value: str) -> str:
    match = re.search(r"\.(\d{1,9})", value)
    if not match:
        return value
    digits = match.group(1)[:6].ljust(6, "0")
    return value[: match.start()] + "." + digits + value[match.end():]
