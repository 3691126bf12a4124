"""
Unit tests for the cross-field predicates behind logical rules.
"""

from datetime import date

import pytest

from emir_quality.core.errors import RecordParseError
from emir_quality.core.models import TradeRecord
from emir_quality.core.rules import PREDICATE_REGISTRY, RecordView, register_predicate
from emir_quality.core.rules.predicates import referenced_fields


def view_of(schema, **values) -> RecordView:
    record = TradeRecord(uti="UTI1", report_date=date(2025, 9, 25), row_number=1, values=values)
    return RecordView(record, schema)


def evaluate(catalog, schema, rule_id, **values):
    rule = next(r for r in catalog.logical_rules if r.id == rule_id)
    return PREDICATE_REGISTRY[rule.predicate](view_of(schema, **values), rule.params, rule)


@pytest.mark.unit
class TestOrderedDates:
    """DATE_SEQUENCE_ERROR and EARLY_TERMINATION_ERROR"""

    def test_ordered_chain(self, catalog, schema):
        assert evaluate(
            catalog, schema, "DATE_SEQUENCE_ERROR",
            execution_timestamp="2025-09-25T18:00:00Z", effective_date="2025-09-25", expiration_date="2030-01-01",
        ) == []

    def test_execution_after_effective(self, catalog, schema):
        violations = evaluate(
            catalog, schema, "DATE_SEQUENCE_ERROR",
            execution_timestamp="2025-09-26T09:00:00Z", effective_date="2025-09-25", expiration_date="2030-01-01",
        )

        assert len(violations) == 1
        assert violations[0].field_name == "effective_date"
        assert "execution_timestamp=2025-09-26" in violations[0].sample_value

    def test_one_violation_when_whole_chain_breaks(self, catalog, schema):
        violations = evaluate(
            catalog, schema, "DATE_SEQUENCE_ERROR",
            execution_timestamp="2031-01-01T00:00:00Z", effective_date="2030-06-01", expiration_date="2030-01-01",
        )
        assert len(violations) == 1

    def test_absent_dates_are_skipped(self, catalog, schema):
        assert evaluate(
            catalog, schema, "DATE_SEQUENCE_ERROR",
            execution_timestamp="2025-09-24T10:00:00Z", expiration_date="2030-01-01",
        ) == []

    def test_early_termination_must_be_strictly_before(self, catalog, schema):
        violations = evaluate(
            catalog, schema, "EARLY_TERMINATION_ERROR",
            early_termination_date="2030-01-01", expiration_date="2030-01-01",
        )

        assert len(violations) == 1
        assert violations[0].field_name == "early_termination_date"

    def test_unparseable_date_raises(self, catalog, schema):
        with pytest.raises(RecordParseError) as exc_info:
            evaluate(catalog, schema, "DATE_SEQUENCE_ERROR", effective_date="25/09/2025", expiration_date="2030-01-01")

        assert exc_info.value.field_name == "effective_date"
        assert exc_info.value.record_id == "UTI1#1"


@pytest.mark.unit
class TestClearingRules:
    """CLEARING_CCP_MISSING and CLEARING_OBLIGATION_BREACH"""

    def test_cleared_requires_ccp_and_timestamp(self, catalog, schema):
        violations = evaluate(catalog, schema, "CLEARING_CCP_MISSING", cleared="true")

        assert sorted(v.field_name for v in violations) == ["central_counterparty", "clearing_timestamp"]

    def test_uncleared_requires_nothing(self, catalog, schema):
        assert evaluate(catalog, schema, "CLEARING_CCP_MISSING", cleared="false") == []

    def test_obligation_breach(self, catalog, schema):
        violations = evaluate(catalog, schema, "CLEARING_OBLIGATION_BREACH", clearing_obligation="true", cleared="false")

        assert len(violations) == 1
        assert violations[0].field_name == "cleared"

    def test_obligation_met(self, catalog, schema):
        assert evaluate(catalog, schema, "CLEARING_OBLIGATION_BREACH", clearing_obligation="true", cleared="true") == []


@pytest.mark.unit
class TestNotionalRules:
    """NOTIONAL_CURRENCY_PAIRING and NOTIONAL_RANGE"""

    def test_amount_without_currency(self, catalog, schema):
        violations = evaluate(
            catalog, schema, "NOTIONAL_CURRENCY_PAIRING",
            notional_amount_1="1000", notional_currency_1="EUR", notional_amount_2="500",
        )

        assert len(violations) == 1
        assert violations[0].field_name == "notional_currency_2"
        assert violations[0].sample_value == "500"

    def test_currency_without_amount(self, catalog, schema):
        violations = evaluate(catalog, schema, "NOTIONAL_CURRENCY_PAIRING", leg1_notional_currency="USD")

        assert [v.field_name for v in violations] == ["leg1_notional_amount"]

    @pytest.mark.parametrize("amount,expected", [("0", 0), ("1000000000000", 0), ("-1", 1), ("1000000000000.01", 1)])
    def test_range_bounds_inclusive(self, catalog, schema, amount, expected):
        assert len(evaluate(catalog, schema, "NOTIONAL_RANGE", notional_amount_1=amount)) == expected


@pytest.mark.unit
class TestPresenceRules:
    """OPTION_COPRESENCE and SWAP_LEG_RATE"""

    def test_option_fields_all_or_none(self, catalog, schema):
        assert evaluate(catalog, schema, "OPTION_COPRESENCE") == []
        assert evaluate(
            catalog, schema, "OPTION_COPRESENCE", option_type="CALL", option_style="EUROPEAN", strike_price="100",
        ) == []

        violations = evaluate(catalog, schema, "OPTION_COPRESENCE", option_type="CALL")
        assert len(violations) == 1
        assert violations[0].field_name == "option_style"

    def test_unreported_leg_is_ignored(self, catalog, schema):
        assert evaluate(catalog, schema, "SWAP_LEG_RATE", leg1_fixed_rate="0.02") == []

    def test_leg_with_both_rates(self, catalog, schema):
        violations = evaluate(catalog, schema, "SWAP_LEG_RATE", leg1_fixed_rate="0.02", leg1_floating_rate="EURIBOR")

        assert len(violations) == 1
        assert violations[0].field_name == "leg1_fixed_rate"

    def test_leg_with_no_rate(self, catalog, schema):
        violations = evaluate(catalog, schema, "SWAP_LEG_RATE", leg2_notional_amount="1000")

        assert len(violations) == 1
        assert "Leg leg2" in violations[0].message


@pytest.mark.unit
class TestPredicateRegistry:
    """Tests for the registry itself"""

    def test_duplicate_registration_rejected(self):
        with pytest.raises(ValueError, match="already registered"):
            register_predicate("ordered_dates")(lambda view, params, rule: [])

    def test_referenced_fields(self):
        params = {
            "flag": "cleared",
            "requires": ["central_counterparty"],
            "pairs": [["notional_amount_1", "notional_currency_1"]],
            "legs": [{"prefix": "leg1_", "fields": ["leg1_fixed_rate"]}],
        }
        assert referenced_fields(params) == [
            "cleared", "central_counterparty", "notional_amount_1", "notional_currency_1", "leg1_fixed_rate",
        ]
