"""
Validators for values drawn from closed code lists (currencies, enumerations).
"""

import re
from typing import Any

from .base_validator import BaseValidator

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


class CurrencyValidator(BaseValidator):
    """
    Validates ISO 4217 currency codes.

    Parameters:
    - codes: Collection of valid codes (the loaded ISO 4217 table)
    """

    def __init__(self, parameters: dict[str, Any] | None = None):
        super().__init__(parameters)
        codes = self.parameters.get("codes")
        if not codes:
            raise ValueError("CurrencyValidator requires 'codes' parameter")
        self.codes = frozenset(codes)

    def validate(self, value: str, field_name: str) -> None:
        if not CURRENCY_PATTERN.match(value):
            self.fail(field_name, f"Currency '{value}' must be 3 uppercase letters")
        if value not in self.codes:
            self.fail(field_name, f"Currency '{value}' is not an ISO 4217 code")

    @property
    def rule_type(self) -> str:
        return "currency"


class EnumValidator(BaseValidator):
    """
    Validates that a value is one of an allowed set.

    Parameters:
    - values: List of allowed values
    - case_sensitive: Compare exactly (default True)
    """

    def __init__(self, parameters: dict[str, Any] | None = None):
        super().__init__(parameters)
        values = self.parameters.get("values")
        if not values:
            raise ValueError("EnumValidator requires 'values' parameter")
        self.case_sensitive = self.parameters.get("case_sensitive", True)
        if self.case_sensitive:
            self.allowed = frozenset(str(v) for v in values)
        else:
            self.allowed = frozenset(str(v).upper() for v in values)

    def validate(self, value: str, field_name: str) -> None:
        candidate = value if self.case_sensitive else value.upper()
        if candidate not in self.allowed:
            self.fail(field_name, f"Value '{value}' is not one of {sorted(self.allowed)}")

    @property
    def rule_type(self) -> str:
        return "enum"
