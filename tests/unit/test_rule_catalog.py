"""
Unit tests for the rule catalog loader.
"""

import pytest
import yaml

from emir_quality.core.errors import RuleCatalogError
from emir_quality.core.models import DataType, Severity
from emir_quality.core.rules import RuleCatalogLoader, parse_catalog
from emir_quality.core.validators import IsinValidator, LeiValidator, TypeValidator


def minimal_config(**overrides):
    config = {
        "version": "test",
        "type_rules": {"date": "ISO_DATE"},
        "format_rules": [
            {"id": "LEI_FORMAT", "check": "lei", "severity": "CRITICAL"},
            {"id": "ISO_DATE", "check": "iso_date", "severity": "MAJOR"},
        ],
        "uniqueness_rules": [{"id": "DUPLICATE_UTI", "field": "uti", "severity": "MAJOR"}],
        "logical_rules": [
            {
                "id": "DATE_SEQUENCE_ERROR",
                "predicate": "ordered_dates",
                "severity": "CRITICAL",
                "params": {"fields": ["effective_date", "expiration_date"]},
            }
        ],
    }
    config.update(overrides)
    return config


@pytest.mark.unit
class TestShippedCatalog:
    """Tests against config/rules/emir_rules.yaml"""

    def test_default_weights(self, catalog):
        assert catalog.weight(Severity.CRITICAL) == 10
        assert catalog.weight(Severity.MAJOR) == 5
        assert catalog.weight(Severity.MINOR) == 2

    def test_required_rules_present(self, catalog):
        format_ids = {rule.id for rule in catalog.format_rules}
        logical_ids = {rule.id for rule in catalog.logical_rules}

        assert {"LEI_FORMAT", "ISIN_FORMAT", "UPI_FORMAT", "CURRENCY_CODE", "ISO_DATE", "ISO_TIMESTAMP"} <= format_ids
        assert {
            "DATE_SEQUENCE_ERROR",
            "EARLY_TERMINATION_ERROR",
            "CLEARING_CCP_MISSING",
            "CLEARING_OBLIGATION_BREACH",
            "NOTIONAL_CURRENCY_PAIRING",
            "NOTIONAL_RANGE",
            "OPTION_COPRESENCE",
            "SWAP_LEG_RATE",
        } <= logical_ids
        assert [rule.id for rule in catalog.uniqueness_rules] == ["DUPLICATE_UTI"]

    def test_severities(self, catalog):
        assert catalog.format_rule("LEI_FORMAT").severity is Severity.CRITICAL
        assert catalog.format_rule("ISIN_FORMAT").severity is Severity.CRITICAL
        assert catalog.format_rule("UPI_FORMAT").severity is Severity.MAJOR
        assert catalog.format_rule("CURRENCY_CODE").severity is Severity.MAJOR

    def test_rules_for_field(self, catalog):
        assert catalog.rules_for_field("counterparty_1", DataType.STRING, "LEI_FORMAT") == ["LEI_FORMAT"]
        assert catalog.rules_for_field("event_date", DataType.DATE, None) == ["ISO_DATE"]

    def test_build_validators(self, catalog, currency_codes):
        validators = catalog.build_validators(currency_codes)

        assert isinstance(validators["LEI_FORMAT"], LeiValidator)
        assert isinstance(validators["ISIN_FORMAT"], IsinValidator)
        assert isinstance(validators["ISO_TIMESTAMP"], TypeValidator)

    def test_currency_check_needs_codes(self, catalog):
        with pytest.raises(RuleCatalogError, match="CURRENCY_CODE"):
            catalog.build_validators(None)


@pytest.mark.unit
class TestCatalogLoading:
    """Tests for catalog parsing and reference checks"""

    def test_parse_minimal(self):
        catalog = parse_catalog(minimal_config())

        assert catalog.version == "test"
        assert catalog.type_rules == {DataType.DATE: "ISO_DATE"}
        assert catalog.summary() == {"version": "test", "format_rules": 2, "uniqueness_rules": 1, "logical_rules": 1}

    def test_weights_override(self):
        catalog = parse_catalog(minimal_config(severity_weights={"MINOR": 1}))

        assert catalog.weight(Severity.MINOR) == 1
        assert catalog.weight(Severity.CRITICAL) == 10

    def test_unknown_predicate(self):
        config = minimal_config()
        config["logical_rules"][0]["predicate"] = "no_such_predicate"

        with pytest.raises(RuleCatalogError, match="Unknown predicate"):
            parse_catalog(config)

    def test_missing_predicate_params(self):
        config = minimal_config()
        config["logical_rules"][0]["params"] = {}

        with pytest.raises(RuleCatalogError, match="missing parameters"):
            parse_catalog(config)

    def test_unknown_check(self):
        config = minimal_config()
        config["format_rules"].append({"id": "BIC", "check": "bic", "severity": "MINOR"})

        with pytest.raises(RuleCatalogError, match="unknown check 'bic'"):
            parse_catalog(config)

    def test_type_rule_must_exist(self):
        with pytest.raises(RuleCatalogError, match="unknown rule"):
            parse_catalog(minimal_config(type_rules={"decimal": "DECIMAL_FORMAT"}))

    def test_duplicate_ids(self):
        config = minimal_config()
        config["format_rules"].append({"id": "LEI_FORMAT", "check": "lei", "severity": "MAJOR"})

        with pytest.raises(RuleCatalogError, match="Duplicate rule id"):
            parse_catalog(config)

    def test_invalid_severity(self):
        config = minimal_config()
        config["format_rules"][0]["severity"] = "FATAL"

        with pytest.raises(RuleCatalogError, match="Invalid rule catalog"):
            parse_catalog(config)

    def test_missing_file(self, tmp_path):
        with pytest.raises(RuleCatalogError, match="not found"):
            RuleCatalogLoader(tmp_path / "missing.yaml")

    def test_unknown_field_against_schema(self, tmp_path, config_dir, schema):
        config = yaml.safe_load((config_dir / "rules" / "emir_rules.yaml").read_text())
        config["logical_rules"][0]["params"]["fields"] = ["effective_date", "maturity"]
        path = tmp_path / "rules.yaml"
        path.write_text(yaml.safe_dump(config))

        with pytest.raises(RuleCatalogError, match="maturity"):
            RuleCatalogLoader(path).load(schema)

    def test_schema_references_unknown_rule(self, tmp_path, schema):
        # The shipped schema binds UTI_FORMAT, which this catalog lacks
        path = tmp_path / "rules.yaml"
        path.write_text(yaml.safe_dump(minimal_config()))

        with pytest.raises(RuleCatalogError, match="unknown format rule"):
            RuleCatalogLoader(path).load(schema)

    def test_load_without_schema(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(yaml.safe_dump(minimal_config()))

        catalog = RuleCatalogLoader(path).load()
        assert len(catalog.logical_rules) == 1
