"""
Cross-field predicates for logical rules.

A predicate is a named function registered here and referenced by name from
the rule catalog's ``logical_rules`` section. Adding a logical rule means a
catalog entry plus, if its check is new, one ``@register_predicate``
function; the logical validator never changes.

Predicate signature::

    predicate(view: RecordView, params: dict, rule: LogicalRule) -> list[RuleViolation]

Predicates must be pure. A value that cannot be parsed raises
RecordParseError (through RecordView); anything else they raise is treated
as a defect in the rule.
"""

from collections.abc import Callable
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from emir_quality.core.errors import RecordParseError, RuleCatalogError
from emir_quality.core.models import DataType, Schema, TradeRecord
from emir_quality.core.schema.field_types import as_date, parse_boolean, parse_decimal, parse_value

if TYPE_CHECKING:
    from .rule_catalog import LogicalRule


class RuleViolation(BaseModel):
    """
    One violation reported by a predicate.

    Attributes:
        field_name: Field the violation is attributed to (None for record-wide)
        sample_value: Offending value(s) for diagnostics
        message: Human-readable explanation
    """

    field_name: str | None = None
    sample_value: str | None = None
    message: str

    class Config:
        frozen = True


class RecordView:
    """
    Typed, read-only access to a record's values for predicates.

    Parsing follows the schema's data type for the field; failures become
    RecordParseError carrying the record and field.
    """

    def __init__(self, record: TradeRecord, schema: Schema):
        self.record = record
        self.schema = schema

    def raw(self, field_name: str) -> str | None:
        return self.record.raw(field_name)

    def present(self, field_name: str) -> bool:
        return self.record.has(field_name)

    def typed(self, field_name: str) -> Any:
        raw = self.raw(field_name)
        if raw is None:
            return None
        definition = self.schema.get(field_name)
        data_type = definition.data_type if definition else DataType.STRING
        try:
            return parse_value(data_type, raw)
        except ValueError as e:
            raise self._parse_error(field_name, e) from e

    def date(self, field_name: str) -> date | None:
        value = self.typed(field_name)
        if value is None:
            return None
        if not isinstance(value, date):
            raise self._parse_error(field_name, ValueError(f"'{value}' is not a date or timestamp"))
        return as_date(value)

    def flag(self, field_name: str) -> bool | None:
        raw = self.raw(field_name)
        if raw is None:
            return None
        try:
            return parse_boolean(raw)
        except ValueError as e:
            raise self._parse_error(field_name, e) from e

    def decimal(self, field_name: str) -> Decimal | None:
        raw = self.raw(field_name)
        if raw is None:
            return None
        try:
            return parse_decimal(raw)
        except ValueError as e:
            raise self._parse_error(field_name, e) from e

    def _parse_error(self, field_name: str, cause: Exception) -> RecordParseError:
        return RecordParseError(
            f"Cannot parse field '{field_name}' of record {self.record.record_id}: {cause}",
            record_id=self.record.record_id,
            field_name=field_name,
        )


Predicate = Callable[[RecordView, dict[str, Any], "LogicalRule"], list[RuleViolation]]

PREDICATE_REGISTRY: dict[str, Predicate] = {}
REQUIRED_PARAMS: dict[str, tuple[str, ...]] = {}


def register_predicate(name: str, required: tuple[str, ...] = ()) -> Callable[[Predicate], Predicate]:
    """
    Register a predicate under a catalog name.

    Args:
        name: Name used by ``predicate:`` in the rule catalog
        required: Parameter keys every rule using this predicate must supply
    """

    def decorator(func: Predicate) -> Predicate:
        if name in PREDICATE_REGISTRY:
            raise ValueError(f"Predicate '{name}' is already registered")
        PREDICATE_REGISTRY[name] = func
        REQUIRED_PARAMS[name] = required
        return func

    return decorator


def get_predicate(name: str) -> Predicate:
    try:
        return PREDICATE_REGISTRY[name]
    except KeyError:
        raise RuleCatalogError(f"Unknown predicate: {name}") from None


def referenced_fields(params: dict[str, Any]) -> list[str]:
    """
    Collect every field name a rule's parameters mention.

    Used by the catalog loader to check rules against the schema.
    """
    fields: list[str] = []
    for key in ("flag", "when_true", "when_false"):
        if key in params:
            fields.append(params[key])
    for key in ("fields", "requires"):
        fields.extend(params.get(key, []))
    for pair in params.get("pairs", []):
        fields.extend(pair)
    for leg in params.get("legs", []):
        fields.extend(leg.get("fields", []))
    return fields


# =======================
# REGISTERED PREDICATES
# =======================

@register_predicate("ordered_dates", required=("fields",))
def ordered_dates(view: RecordView, params: dict[str, Any], rule: "LogicalRule") -> list[RuleViolation]:
    """
    Present dates must be in non-decreasing order (strictly increasing when
    ``strict`` is set). Timestamps compare by calendar date. Absent fields are
    skipped; at most one violation is reported per record.
    """
    strict = bool(params.get("strict", False))
    present = [(name, view.date(name)) for name in params["fields"]]
    present = [(name, value) for name, value in present if value is not None]

    for (earlier_name, earlier), (later_name, later) in zip(present, present[1:]):
        broken = earlier >= later if strict else earlier > later
        if broken:
            relation = "before" if strict else "on or before"
            return [
                RuleViolation(
                    field_name=rule.field or later_name,
                    sample_value=f"{earlier_name}={earlier.isoformat()}, {later_name}={later.isoformat()}",
                    message=f"{earlier_name} must be {relation} {later_name}",
                )
            ]
    return []


@register_predicate("flag_requires", required=("flag", "requires"))
def flag_requires(view: RecordView, params: dict[str, Any], rule: "LogicalRule") -> list[RuleViolation]:
    """When the flag field is true, every ``requires`` field must be present."""
    if view.flag(params["flag"]) is not True:
        return []
    return [
        RuleViolation(
            field_name=name,
            message=f"{name} is required when {params['flag']} is true",
        )
        for name in params["requires"]
        if not view.present(name)
    ]


@register_predicate("flag_conflict", required=("when_true", "when_false"))
def flag_conflict(view: RecordView, params: dict[str, Any], rule: "LogicalRule") -> list[RuleViolation]:
    """``when_true`` set to true together with ``when_false`` set to false is a violation."""
    if view.flag(params["when_true"]) is True and view.flag(params["when_false"]) is False:
        return [
            RuleViolation(
                field_name=rule.field or params["when_false"],
                sample_value=f"{params['when_true']}=true, {params['when_false']}=false",
                message=f"{params['when_false']} must be true when {params['when_true']} is true",
            )
        ]
    return []


@register_predicate("paired_presence", required=("pairs",))
def paired_presence(view: RecordView, params: dict[str, Any], rule: "LogicalRule") -> list[RuleViolation]:
    """Each pair of fields must be both present or both absent."""
    violations = []
    for first, second in params["pairs"]:
        first_present = view.present(first)
        if first_present != view.present(second):
            missing, reported = (second, first) if first_present else (first, second)
            violations.append(
                RuleViolation(
                    field_name=missing,
                    sample_value=view.raw(reported),
                    message=f"{missing} must be reported together with {reported}",
                )
            )
    return violations


@register_predicate("decimal_range", required=("fields",))
def decimal_range(view: RecordView, params: dict[str, Any], rule: "LogicalRule") -> list[RuleViolation]:
    """Present decimal fields must lie within the inclusive [min, max] range."""
    minimum = Decimal(str(params["min"])) if params.get("min") is not None else None
    maximum = Decimal(str(params["max"])) if params.get("max") is not None else None

    violations = []
    for name in params["fields"]:
        value = view.decimal(name)
        if value is None:
            continue
        if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
            violations.append(
                RuleViolation(
                    field_name=name,
                    sample_value=view.raw(name),
                    message=f"{name} must be within [{minimum}, {maximum}]",
                )
            )
    return violations


@register_predicate("all_or_none", required=("fields",))
def all_or_none(view: RecordView, params: dict[str, Any], rule: "LogicalRule") -> list[RuleViolation]:
    """The listed fields must be all present or all absent."""
    fields = params["fields"]
    present = [name for name in fields if view.present(name)]
    if not present or len(present) == len(fields):
        return []
    missing = [name for name in fields if name not in present]
    return [
        RuleViolation(
            field_name=rule.field or missing[0],
            sample_value=",".join(present),
            message=f"{', '.join(missing)} must be reported together with {', '.join(present)}",
        )
    ]


@register_predicate("exactly_one_per_leg", required=("legs",))
def exactly_one_per_leg(view: RecordView, params: dict[str, Any], rule: "LogicalRule") -> list[RuleViolation]:
    """
    For every reported leg, exactly one of the leg's alternative fields is present.

    A leg counts as reported when any populated field name starts with its prefix.
    """
    violations = []
    for leg in params["legs"]:
        prefix = leg["prefix"]
        if not any(name.startswith(prefix) and view.present(name) for name in view.schema.field_names):
            continue
        alternatives = leg["fields"]
        populated = [name for name in alternatives if view.present(name)]
        if len(populated) != 1:
            violations.append(
                RuleViolation(
                    field_name=alternatives[0],
                    sample_value=",".join(populated) or None,
                    message=f"Leg {prefix.rstrip('_')} must report exactly one of {', '.join(alternatives)}",
                )
            )
    return violations
