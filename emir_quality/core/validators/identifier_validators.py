"""
Validators for entity and instrument identifiers (LEI, ISIN).
"""

import re
from typing import Any

from .base_validator import BaseValidator

LEI_LENGTH = 20
LEI_PATTERN = re.compile(r"^[A-Z0-9]{20}$")

ISIN_LENGTH = 12
ISIN_PATTERN = re.compile(r"^[A-Z]{2}[A-Z0-9]{9}[0-9]$")


def expand_alphanumeric(value: str) -> str:
    """Replace letters by their two-digit values (A=10 ... Z=35)."""
    return "".join(str(int(ch, 36)) for ch in value)


def isin_check_digit(body: str) -> int:
    """
    Compute the ISO 6166 check digit of an 11-character ISIN body.

    Letters are expanded to numbers, then the Luhn modulus-10 algorithm runs
    over the digit string, doubling every second digit starting from the
    rightmost one.

    >>> isin_check_digit("US037833100")
    5
    """
    digits = expand_alphanumeric(body.upper())
    total = 0
    for index, ch in enumerate(reversed(digits)):
        digit = int(ch)
        if index % 2 == 0:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return (10 - total % 10) % 10


def lei_checksum_valid(lei: str) -> bool:
    """ISO 17442 / ISO 7064 MOD 97-10: the expanded LEI modulo 97 equals 1."""
    return int(expand_alphanumeric(lei)) % 97 == 1


class LeiValidator(BaseValidator):
    """
    Validates Legal Entity Identifiers.

    Parameters:
    - verify_checksum: Also check the ISO 17442 MOD 97-10 check digits (default False)
    """

    def __init__(self, parameters: dict[str, Any] | None = None):
        super().__init__(parameters)
        self.verify_checksum = bool(self.parameters.get("verify_checksum", False))

    def validate(self, value: str, field_name: str) -> None:
        if len(value) != LEI_LENGTH:
            self.fail(field_name, f"LEI must be {LEI_LENGTH} characters, got {len(value)}")
        if not LEI_PATTERN.match(value):
            self.fail(field_name, "LEI must contain only uppercase letters and digits")
        if self.verify_checksum and not lei_checksum_valid(value):
            self.fail(field_name, "LEI check digits are invalid")

    @property
    def rule_type(self) -> str:
        return "lei"


class IsinValidator(BaseValidator):
    """
    Validates International Securities Identification Numbers.

    Structure: 2-letter country code, 9 alphanumerics, 1 check digit that
    must equal the ISO 6166 modulus-10 check digit of the first 11 characters.
    """

    def validate(self, value: str, field_name: str) -> None:
        if len(value) != ISIN_LENGTH:
            self.fail(field_name, f"ISIN must be {ISIN_LENGTH} characters, got {len(value)}")
        if not ISIN_PATTERN.match(value):
            self.fail(field_name, "ISIN must be 2 letters, 9 alphanumerics and a check digit")

        expected = isin_check_digit(value[:11])
        if int(value[11]) != expected:
            self.fail(field_name, f"ISIN check digit is {value[11]}, expected {expected}")

    @property
    def rule_type(self) -> str:
        return "isin"
