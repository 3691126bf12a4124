"""
Base validator interface for all format checks.

All validators inherit from BaseValidator and implement validate(). A
validator is built once per catalog rule and applied to every field bound to
that rule, so it must hold no per-record state.
"""

from abc import ABC, abstractmethod
from typing import Any


class ValidationError(Exception):
    """Raised when a value violates a format check."""

    def __init__(self, rule_name: str, field_name: str, message: str):
        self.rule_name = rule_name
        self.field_name = field_name
        self.message = message
        super().__init__(f"[{rule_name}] {field_name}: {message}")


class BaseValidator(ABC):
    """
    Abstract base class for all validators.

    Each validator implements one check type (lei, isin, regex, currency,
    type, enum). Validators are only called with non-empty values: an empty
    value is absent and is the completeness phase's concern.
    """

    def __init__(self, parameters: dict[str, Any] | None = None):
        """
        Initialize validator.

        Args:
            parameters: Check-specific parameters (e.g. pattern for regex)
        """
        self.parameters = parameters or {}

    @abstractmethod
    def validate(self, value: str, field_name: str) -> None:
        """
        Validate a value against this check.

        Args:
            value: The raw (non-empty) field value
            field_name: Field being checked, for error messages

        Raises:
            ValidationError: If validation fails
        """

    @property
    @abstractmethod
    def rule_type(self) -> str:
        """Return the check type identifier."""

    def fail(self, field_name: str, message: str) -> None:
        raise ValidationError(rule_name=self.rule_type, field_name=field_name, message=message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(params={self.parameters})"
