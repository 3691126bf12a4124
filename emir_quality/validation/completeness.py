"""
Completeness phase: every mandatory field must be populated.
"""

from typing import Any

from emir_quality.core.models import Schema, Severity, TradeRecord, ValidationFinding, ValidationPhase

from .base import PhaseValidator

MISSING_IDENTIFIER = "MISSING_IDENTIFIER"
MISSING_MANDATORY_FIELD = "MISSING_MANDATORY_FIELD"


class CompletenessValidator(PhaseValidator):
    """
    Flags missing mandatory fields.

    Absent keys, None and empty or whitespace-only strings all count as
    missing. A missing identifier-category field is CRITICAL, any other
    missing mandatory field MAJOR. Optional fields are never flagged.
    """

    phase = ValidationPhase.COMPLETENESS

    def __init__(self, schema: Schema):
        self.schema = schema
        self._mandatory = schema.mandatory_fields

    def validate_record(self, record: TradeRecord, state: Any = None) -> list[ValidationFinding]:
        findings = []
        for definition in self._mandatory:
            if record.has(definition.name):
                continue
            if definition.is_identifier:
                rule_id, severity = MISSING_IDENTIFIER, Severity.CRITICAL
            else:
                rule_id, severity = MISSING_MANDATORY_FIELD, Severity.MAJOR
            findings.append(
                ValidationFinding.create(
                    record_id=record.record_id,
                    phase=self.phase,
                    rule_id=rule_id,
                    severity=severity,
                    field_name=definition.name,
                    message=f"Mandatory field '{definition.name}' is missing",
                )
            )
        return findings
