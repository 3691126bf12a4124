"""
TypeValidator - validates that a raw value parses as a field data type.
"""

from typing import Any

from emir_quality.core.models import DataType
from emir_quality.core.schema.field_types import parse_value

from .base_validator import BaseValidator


class TypeValidator(BaseValidator):
    """
    Validates that a raw string parses as the expected data type.

    Supported types are the closed DataType set; a few aliases are accepted
    so catalog check names read naturally.

    Parameters:
    - expected_type: "date", "timestamp", "decimal" or "boolean" (or a DataType)
    """

    TYPE_MAPPING = {
        "date": DataType.DATE,
        "iso_date": DataType.DATE,
        "timestamp": DataType.TIMESTAMP,
        "iso_timestamp": DataType.TIMESTAMP,
        "decimal": DataType.DECIMAL,
        "boolean": DataType.BOOLEAN,
    }

    def __init__(self, parameters: dict[str, Any] | None = None):
        super().__init__(parameters)

        expected_type = self.parameters.get("expected_type")
        if not expected_type:
            raise ValueError("TypeValidator requires 'expected_type' parameter")

        if isinstance(expected_type, DataType):
            self.expected_type = expected_type
        else:
            mapped = self.TYPE_MAPPING.get(str(expected_type).lower())
            if not mapped:
                raise ValueError(f"Unsupported type: {expected_type}")
            self.expected_type = mapped

    def validate(self, value: str, field_name: str) -> None:
        try:
            parse_value(self.expected_type, value)
        except ValueError as e:
            self.fail(field_name, f"Cannot parse as {self.expected_type.value}: {e}")

    @property
    def rule_type(self) -> str:
        return "type_check"
