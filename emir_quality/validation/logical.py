"""
Logical phase: cross-field business rules evaluated through registered predicates.
"""

from typing import Any

from emir_quality.core.errors import RecordParseError, RuleEvaluationError
from emir_quality.core.models import Schema, TradeRecord, ValidationFinding, ValidationPhase
from emir_quality.core.rules import LogicalRule, RecordView, RuleCatalog, get_predicate
from emir_quality.core.rules.predicates import Predicate

from .base import PhaseValidator


class LogicalValidator(PhaseValidator):
    """
    Evaluates every logical rule of the catalog on each record.

    If any value a predicate needs cannot be parsed, the whole record is
    excluded from this phase (RecordParseError propagates to the executor,
    which counts it). Any other exception means the rule is broken and is
    raised as RuleEvaluationError.
    """

    phase = ValidationPhase.LOGICAL

    def __init__(self, schema: Schema, catalog: RuleCatalog):
        self.schema = schema
        self.catalog = catalog
        self._rules: list[tuple[LogicalRule, Predicate]] = [
            (rule, get_predicate(rule.predicate)) for rule in catalog.logical_rules
        ]

    def validate_record(self, record: TradeRecord, state: Any = None) -> list[ValidationFinding]:
        view = RecordView(record, self.schema)
        findings = []
        for rule, predicate in self._rules:
            try:
                violations = predicate(view, rule.params, rule)
            except RecordParseError:
                raise
            except Exception as e:
                raise RuleEvaluationError(rule.id, record.record_id, e) from e

            for violation in violations:
                findings.append(
                    ValidationFinding.create(
                        record_id=record.record_id,
                        phase=self.phase,
                        rule_id=rule.id,
                        severity=rule.severity,
                        field_name=violation.field_name,
                        sample_value=violation.sample_value,
                        message=violation.message,
                    )
                )
        return findings
