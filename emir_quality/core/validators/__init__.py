"""
Format check implementations.

Provides validators for identifiers (LEI, ISIN), regex patterns, ISO 4217
currencies, enumerations and typed values (ISO-8601 dates and timestamps,
decimals, booleans).
"""

from .base_validator import BaseValidator, ValidationError
from .code_validators import CurrencyValidator, EnumValidator
from .identifier_validators import IsinValidator, LeiValidator, isin_check_digit
from .regex_validator import RegexValidator
from .type_validator import TypeValidator

__all__ = [
    "BaseValidator",
    "ValidationError",
    "LeiValidator",
    "IsinValidator",
    "isin_check_digit",
    "RegexValidator",
    "CurrencyValidator",
    "EnumValidator",
    "TypeValidator",
]
