"""
Rule catalog management.

Loads format, uniqueness and logical rules from a YAML file into an immutable
RuleCatalog and builds the format validators the catalog references.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from emir_quality.core.errors import RuleCatalogError
from emir_quality.core.models import DataType, Schema, Severity
from emir_quality.core.validators import (
    BaseValidator,
    CurrencyValidator,
    EnumValidator,
    IsinValidator,
    LeiValidator,
    RegexValidator,
    TypeValidator,
)
from emir_quality.observability.logger import get_logger

from .predicates import REQUIRED_PARAMS, get_predicate, referenced_fields

logger = get_logger(__name__)

DEFAULT_SEVERITY_WEIGHTS = {
    Severity.CRITICAL: 10,
    Severity.MAJOR: 5,
    Severity.MINOR: 2,
}

# check name -> (validator class, fixed parameters)
CHECK_REGISTRY: dict[str, tuple[type[BaseValidator], dict[str, Any]]] = {
    "lei": (LeiValidator, {}),
    "isin": (IsinValidator, {}),
    "regex": (RegexValidator, {}),
    "currency": (CurrencyValidator, {}),
    "enum": (EnumValidator, {}),
    "iso_date": (TypeValidator, {"expected_type": "date"}),
    "iso_timestamp": (TypeValidator, {"expected_type": "timestamp"}),
    "decimal": (TypeValidator, {"expected_type": "decimal"}),
    "boolean": (TypeValidator, {"expected_type": "boolean"}),
}


class FormatRule(BaseModel):
    """
    Single-field format rule.

    Attributes:
        id: Catalog identifier (e.g. LEI_FORMAT)
        check: Check type from CHECK_REGISTRY
        severity: Severity of a violation
        params: Check parameters
        description: Human-readable description
    """

    id: str = Field(..., min_length=1)
    check: str
    severity: Severity
    params: dict[str, Any] = Field(default_factory=dict)
    description: str | None = None

    class Config:
        frozen = True


class UniquenessRule(BaseModel):
    """Batch-wide uniqueness rule over one field (e.g. DUPLICATE_UTI)."""

    id: str = Field(..., min_length=1)
    field: str
    severity: Severity
    description: str | None = None

    class Config:
        frozen = True


class LogicalRule(BaseModel):
    """
    Cross-field rule evaluated by a registered predicate.

    Attributes:
        id: Catalog identifier (e.g. DATE_SEQUENCE_ERROR)
        predicate: Name of the registered predicate
        severity: Severity of a violation
        field: Primary field violations are attributed to (optional)
        params: Predicate parameters
        description: Human-readable description
    """

    id: str = Field(..., min_length=1)
    predicate: str
    severity: Severity
    field: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    description: str | None = None

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "DATE_SEQUENCE_ERROR",
                "predicate": "ordered_dates",
                "severity": "CRITICAL",
                "params": {"fields": ["execution_timestamp", "effective_date", "expiration_date"]},
            }
        }


class RuleCatalog(BaseModel):
    """
    Immutable set of rules loaded once per run.

    Attributes:
        version: Catalog version string
        severity_weights: Penalty points per severity
        type_rules: Format rule applied to every field of a data type
        format_rules: Single-field format rules
        uniqueness_rules: Batch-wide uniqueness rules
        logical_rules: Cross-field rules
    """

    version: str = "unversioned"
    severity_weights: dict[Severity, int] = Field(default_factory=lambda: dict(DEFAULT_SEVERITY_WEIGHTS))
    type_rules: dict[DataType, str] = Field(default_factory=dict)
    format_rules: tuple[FormatRule, ...] = ()
    uniqueness_rules: tuple[UniquenessRule, ...] = ()
    logical_rules: tuple[LogicalRule, ...] = ()

    def format_rule(self, rule_id: str) -> FormatRule | None:
        for rule in self.format_rules:
            if rule.id == rule_id:
                return rule
        return None

    def weight(self, severity: Severity) -> int:
        return self.severity_weights[severity]

    def rules_for_field(self, name: str, data_type: DataType, format_rule_id: str | None) -> list[str]:
        """
        Format rule ids that apply to a field: its own rule first, then the
        rule for its data type.
        """
        rule_ids = []
        if format_rule_id:
            rule_ids.append(format_rule_id)
        type_rule = self.type_rules.get(data_type)
        if type_rule and type_rule not in rule_ids:
            rule_ids.append(type_rule)
        return rule_ids

    def build_validators(self, currency_codes: frozenset[str] | None = None) -> dict[str, BaseValidator]:
        """
        Instantiate one validator per format rule.

        Args:
            currency_codes: ISO 4217 table, required when a ``currency`` check is used

        Returns:
            Mapping of rule id to validator

        Raises:
            RuleCatalogError: If a rule's parameters are rejected by its validator
        """
        validators: dict[str, BaseValidator] = {}
        for rule in self.format_rules:
            validator_class, fixed_params = CHECK_REGISTRY[rule.check]
            parameters = {**rule.params, **fixed_params}
            if rule.check == "currency":
                parameters.setdefault("codes", currency_codes)
            try:
                validators[rule.id] = validator_class(parameters)
            except ValueError as e:
                raise RuleCatalogError(f"Failed to create validator for rule '{rule.id}': {e}") from e
        return validators

    def summary(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "format_rules": len(self.format_rules),
            "uniqueness_rules": len(self.uniqueness_rules),
            "logical_rules": len(self.logical_rules),
        }

    class Config:
        frozen = True


class RuleCatalogLoader:
    """
    Loads the rule catalog from a YAML configuration file.

    Expected YAML format:
    ```yaml
    version: "2024.1"
    severity_weights: {CRITICAL: 10, MAJOR: 5, MINOR: 2}
    type_rules: {date: ISO_DATE}
    format_rules:
      - id: LEI_FORMAT
        check: lei
        severity: CRITICAL
    uniqueness_rules:
      - id: DUPLICATE_UTI
        field: uti
        severity: MAJOR
    logical_rules:
      - id: DATE_SEQUENCE_ERROR
        predicate: ordered_dates
        severity: CRITICAL
        params:
          fields: [execution_timestamp, effective_date, expiration_date]
    ```
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the rule catalog loader.

        Args:
            config_path: Path to the YAML catalog file

        Raises:
            RuleCatalogError: If the file does not exist
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise RuleCatalogError(f"Rule catalog file not found: {config_path}")

    def load(self, schema: Schema | None = None) -> RuleCatalog:
        """
        Load and check the catalog.

        Args:
            schema: When given, rules are also checked against its fields

        Returns:
            Immutable RuleCatalog

        Raises:
            RuleCatalogError: If the YAML is invalid, a rule is malformed, ids
                repeat, or a rule references an unknown check, predicate or field
        """
        try:
            with open(self.config_path) as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RuleCatalogError(f"Rule catalog {self.config_path} is not valid YAML: {e}") from e

        if not config or not isinstance(config, dict):
            raise RuleCatalogError("Rule catalog must be a mapping")

        catalog = parse_catalog(config)
        if schema is not None:
            check_against_schema(catalog, schema)

        logger.info(f"Loaded rule catalog {catalog.version}", extra=catalog.summary())
        return catalog


def parse_catalog(config: dict[str, Any]) -> RuleCatalog:
    """
    Build a RuleCatalog from a parsed configuration mapping.

    Raises:
        RuleCatalogError: If the configuration is malformed
    """
    try:
        weights = {**DEFAULT_SEVERITY_WEIGHTS}
        for severity, weight in (config.get("severity_weights") or {}).items():
            weights[Severity(severity)] = int(weight)

        catalog = RuleCatalog(
            version=str(config.get("version", "unversioned")),
            severity_weights=weights,
            type_rules={DataType(k): v for k, v in (config.get("type_rules") or {}).items()},
            format_rules=tuple(FormatRule(**r) for r in config.get("format_rules") or []),
            uniqueness_rules=tuple(UniquenessRule(**r) for r in config.get("uniqueness_rules") or []),
            logical_rules=tuple(LogicalRule(**r) for r in config.get("logical_rules") or []),
        )
    except (ValidationError, ValueError, TypeError) as e:
        raise RuleCatalogError(f"Invalid rule catalog: {e}") from e

    _check_unique_ids(catalog)
    _check_references(catalog)
    return catalog


def check_against_schema(catalog: RuleCatalog, schema: Schema) -> None:
    """
    Check that every rule the schema binds exists and every field a rule
    mentions is defined by the schema.

    Raises:
        RuleCatalogError: On the first unknown reference
    """
    known_rules = {rule.id for rule in catalog.format_rules}
    for definition in schema.definitions:
        if definition.format_rule_id and definition.format_rule_id not in known_rules:
            raise RuleCatalogError(
                f"Field '{definition.name}' references unknown format rule '{definition.format_rule_id}'"
            )

    for rule in catalog.uniqueness_rules:
        if rule.field not in schema:
            raise RuleCatalogError(f"Uniqueness rule '{rule.id}' references unknown field '{rule.field}'")

    for rule in catalog.logical_rules:
        names = referenced_fields(rule.params) + ([rule.field] if rule.field else [])
        unknown = sorted({name for name in names if name not in schema})
        if unknown:
            raise RuleCatalogError(f"Logical rule '{rule.id}' references unknown fields: {unknown}")


def _check_unique_ids(catalog: RuleCatalog) -> None:
    seen: set[str] = set()
    for rule in (*catalog.format_rules, *catalog.uniqueness_rules, *catalog.logical_rules):
        if rule.id in seen:
            raise RuleCatalogError(f"Duplicate rule id: {rule.id}")
        seen.add(rule.id)


def _check_references(catalog: RuleCatalog) -> None:
    for rule in catalog.format_rules:
        if rule.check not in CHECK_REGISTRY:
            raise RuleCatalogError(f"Format rule '{rule.id}' uses unknown check '{rule.check}'")

    known_rules = {rule.id for rule in catalog.format_rules}
    for data_type, rule_id in catalog.type_rules.items():
        if rule_id not in known_rules:
            raise RuleCatalogError(f"Type rule for '{data_type.value}' references unknown rule '{rule_id}'")

    for rule in catalog.logical_rules:
        get_predicate(rule.predicate)
        missing = [key for key in REQUIRED_PARAMS[rule.predicate] if key not in rule.params]
        if missing:
            raise RuleCatalogError(f"Logical rule '{rule.id}' is missing parameters: {missing}")
