"""
Format phase: per-field format rules and batch-wide UTI uniqueness.
"""

from enum import Enum
from typing import Any

from emir_quality.core.errors import RuleCatalogError, RuleEvaluationError
from emir_quality.core.models import FieldDefinition, Schema, TradeRecord, ValidationFinding, ValidationPhase
from emir_quality.core.rules import FormatRule, RuleCatalog, UniquenessRule
from emir_quality.core.validators import BaseValidator, ValidationError

from .base import PhaseValidator

# Uniqueness can only be checked per shard on the field records are sharded by
SHARD_KEY_FIELD = "uti"


class DuplicatePolicy(str, Enum):
    """How many findings a group of records sharing a UTI produces."""

    PER_GROUP = "per_group"
    PER_OCCURRENCE = "per_occurrence"


class _SeenValue:
    __slots__ = ("first_record_id", "occurrences")

    def __init__(self, first_record_id: str):
        self.first_record_id = first_record_id
        self.occurrences = 1


class FormatValidator(PhaseValidator):
    """
    Applies each field's format rules and the catalog's uniqueness rules.

    A field's rules are its own ``format_rule_id`` plus the catalog's type
    rule for its data type. Empty values are absent and never checked.
    Duplicate detection relies on per-shard state: all occurrences of a UTI
    reach the same shard in source order, so the first occurrence is never
    flagged. Duplicates are keyed on ``record.uti``, the trimmed identity
    records are routed by.
    """

    phase = ValidationPhase.FORMAT

    def __init__(
        self,
        schema: Schema,
        catalog: RuleCatalog,
        currency_codes: frozenset[str] | None = None,
        duplicate_policy: DuplicatePolicy | str = DuplicatePolicy.PER_GROUP,
    ):
        """
        Initialize the validator.

        Args:
            schema: Loaded schema
            catalog: Loaded rule catalog
            currency_codes: ISO 4217 table for ``currency`` checks
            duplicate_policy: per_group (one finding per duplicate group, on
                the second occurrence) or per_occurrence

        Raises:
            RuleCatalogError: If a rule cannot be bound
        """
        self.schema = schema
        self.catalog = catalog
        self.duplicate_policy = DuplicatePolicy(duplicate_policy)

        validators = catalog.build_validators(currency_codes)
        self._bindings: list[tuple[FieldDefinition, list[tuple[FormatRule, BaseValidator]]]] = []
        for definition in schema.definitions:
            rule_ids = catalog.rules_for_field(definition.name, definition.data_type, definition.format_rule_id)
            bound = []
            for rule_id in rule_ids:
                rule = catalog.format_rule(rule_id)
                if rule is None:
                    raise RuleCatalogError(f"Field '{definition.name}' references unknown format rule '{rule_id}'")
                bound.append((rule, validators[rule_id]))
            if bound:
                self._bindings.append((definition, bound))

        for rule in catalog.uniqueness_rules:
            if rule.field != SHARD_KEY_FIELD:
                raise RuleCatalogError(
                    f"Uniqueness rule '{rule.id}' must apply to '{SHARD_KEY_FIELD}', got '{rule.field}'"
                )
        self._uniqueness_rules: tuple[UniquenessRule, ...] = catalog.uniqueness_rules

    def new_shard_state(self) -> dict[str, dict[str, _SeenValue]]:
        return {rule.id: {} for rule in self._uniqueness_rules}

    def validate_record(self, record: TradeRecord, state: Any) -> list[ValidationFinding]:
        findings = []
        record_id = record.record_id

        for definition, bound in self._bindings:
            value = record.raw(definition.name)
            if value is None:
                continue
            for rule, validator in bound:
                try:
                    validator.validate(value, definition.name)
                except ValidationError as e:
                    findings.append(
                        ValidationFinding.create(
                            record_id=record_id,
                            phase=self.phase,
                            rule_id=rule.id,
                            severity=rule.severity,
                            field_name=definition.name,
                            sample_value=value,
                            message=e.message,
                        )
                    )
                except Exception as e:
                    raise RuleEvaluationError(rule.id, record_id, e) from e

        if state is None:
            state = self.new_shard_state()
        for rule in self._uniqueness_rules:
            finding = self._check_unique(rule, record, state[rule.id])
            if finding is not None:
                findings.append(finding)
        return findings

    def _check_unique(self, rule: UniquenessRule, record: TradeRecord, seen: dict[str, _SeenValue]) -> ValidationFinding | None:
        value = record.uti
        if not value:
            return None

        entry = seen.get(value)
        if entry is None:
            seen[value] = _SeenValue(record.record_id)
            return None

        entry.occurrences += 1
        if self.duplicate_policy is DuplicatePolicy.PER_GROUP and entry.occurrences > 2:
            return None
        return ValidationFinding.create(
            record_id=record.record_id,
            phase=self.phase,
            rule_id=rule.id,
            severity=rule.severity,
            field_name=rule.field,
            sample_value=f"{value} (first seen in {entry.first_record_id})",
            message=f"{rule.field} '{value}' duplicates record {entry.first_record_id}",
        )
