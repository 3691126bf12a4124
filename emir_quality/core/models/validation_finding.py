"""
ValidationFinding model representing one rule violation on one record.
"""

import hashlib
from functools import cached_property

from pydantic import BaseModel, Field, computed_field

from .enums import Severity, ValidationPhase

SAMPLE_VALUE_MAX_LENGTH = 100


def make_finding_id(record_id: str, phase: ValidationPhase, rule_id: str, field_name: str | None) -> str:
    """
    Deterministic identity of a finding.

    The same violation re-emitted after a retry hashes to the same id, which
    is what makes ledger and sink writes idempotent.
    """
    key = "|".join([record_id, phase.value, rule_id, field_name or ""])
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:20]


class ValidationFinding(BaseModel):
    """
    A single rule violation (immutable once emitted).

    Attributes:
        record_id: Which record violated the rule
        field_name: Field the rule applies to (None for record-wide rules)
        phase: COMPLETENESS, FORMAT or LOGICAL
        rule_id: Rule catalog identifier
        severity: CRITICAL, MAJOR or MINOR
        sample_value: Offending value (truncated) for diagnostics
        message: Human-readable explanation
    """

    record_id: str = Field(..., min_length=1)
    field_name: str | None = None
    phase: ValidationPhase
    rule_id: str = Field(..., min_length=1)
    severity: Severity
    sample_value: str | None = Field(None, max_length=SAMPLE_VALUE_MAX_LENGTH)
    message: str | None = None

    @computed_field
    @cached_property
    def finding_id(self) -> str:
        return make_finding_id(self.record_id, self.phase, self.rule_id, self.field_name)

    @classmethod
    def create(
        cls,
        record_id: str,
        phase: ValidationPhase,
        rule_id: str,
        severity: Severity,
        field_name: str | None = None,
        sample_value: str | None = None,
        message: str | None = None,
    ) -> "ValidationFinding":
        """Build a finding, truncating the sample value to the allowed length."""
        if sample_value is not None and len(sample_value) > SAMPLE_VALUE_MAX_LENGTH:
            sample_value = sample_value[:SAMPLE_VALUE_MAX_LENGTH]
        return cls(
            record_id=record_id,
            field_name=field_name,
            phase=phase,
            rule_id=rule_id,
            severity=severity,
            sample_value=sample_value,
            message=message,
        )

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "record_id": "UTI0000000000000000001#1",
                "field_name": "counterparty_1",
                "phase": "FORMAT",
                "rule_id": "LEI_FORMAT",
                "severity": "CRITICAL",
                "sample_value": "1234",
                "message": "LEI must be 20 characters, got 4",
            }
        }
