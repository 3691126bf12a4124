"""
Unit tests for the schema registry and field type parsing.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
import yaml

from emir_quality.core.errors import SchemaLoadError
from emir_quality.core.models import DataType
from emir_quality.core.schema import EXPECTED_FIELD_COUNT, SchemaRegistry, as_date, parse_value


def small_fields():
    return [
        {"name": "uti", "type": "string", "category": "identifier", "mandatory": True},
        {"name": "event_date", "type": "date", "category": "trade", "mandatory": True},
        {"name": "notional_amount_1", "type": "decimal", "category": "product"},
    ]


@pytest.mark.unit
class TestShippedSchema:
    """Tests against config/schema/emir_refit_v1.yaml"""

    def test_field_count(self, schema):
        assert len(schema) == EXPECTED_FIELD_COUNT == 203

    def test_names_unique_and_ordered(self, schema):
        assert len(set(schema.field_names)) == 203
        assert schema.field_names[0] == "uti"
        assert [d.position for d in schema.definitions] == list(range(203))

    def test_identifier_fields_are_mandatory(self, schema):
        identifiers = {d.name for d in schema.fields_in_category("identifier") if d.mandatory}
        assert {"uti", "counterparty_1", "counterparty_2"} <= identifiers

    def test_categories_in_first_appearance_order(self, schema):
        assert schema.categories[0] == "identifier"
        assert "swap_leg_1" in schema.categories

    def test_lookup(self, schema):
        definition = schema.get("execution_timestamp")
        assert definition.data_type is DataType.TIMESTAMP
        assert "execution_timestamp" in schema
        assert schema.get("no_such_field") is None


@pytest.mark.unit
class TestSchemaRegistry:
    """Tests for SchemaRegistry loading rules"""

    def write_schema(self, directory, version, fields):
        path = directory / f"emir_refit_{version}.yaml"
        path.write_text(yaml.safe_dump({"version": version, "fields": fields}))
        return path

    def test_load_is_cached(self, tmp_path):
        self.write_schema(tmp_path, "v9", small_fields())
        registry = SchemaRegistry(tmp_path, expected_field_count=3)

        first = registry.load("v9")
        second = registry.load("v9")

        assert first is second
        assert first.version == "v9"
        assert [f.name for f in first.mandatory_fields] == ["uti", "event_date"]

    def test_missing_version(self, tmp_path):
        with pytest.raises(SchemaLoadError, match="not found"):
            SchemaRegistry(tmp_path).load("v2")

    def test_wrong_field_count(self, tmp_path):
        self.write_schema(tmp_path, "v9", small_fields())

        with pytest.raises(SchemaLoadError, match="expected exactly 203"):
            SchemaRegistry(tmp_path).load("v9")

    def test_duplicate_names(self, tmp_path):
        fields = small_fields()
        fields[2]["name"] = "uti"
        self.write_schema(tmp_path, "v9", fields)

        with pytest.raises(SchemaLoadError, match="duplicate field names"):
            SchemaRegistry(tmp_path, expected_field_count=3).load("v9")

    def test_invalid_entry(self, tmp_path):
        fields = small_fields()
        fields[1]["type"] = "uuid"
        self.write_schema(tmp_path, "v9", fields)

        with pytest.raises(SchemaLoadError, match="position 1"):
            SchemaRegistry(tmp_path, expected_field_count=3).load("v9")

    def test_malformed_yaml(self, tmp_path):
        (tmp_path / "emir_refit_v9.yaml").write_text("fields: [unclosed")

        with pytest.raises(SchemaLoadError, match="not valid YAML"):
            SchemaRegistry(tmp_path).load("v9")

    def test_list_versions(self, config_dir):
        assert "v1" in SchemaRegistry(config_dir / "schema").list_versions()


@pytest.mark.unit
class TestFieldTypes:
    """Tests for type-specific parsing"""

    def test_parse_each_type(self):
        assert parse_value(DataType.STRING, "abc") == "abc"
        assert parse_value(DataType.DATE, "2025-09-25") == date(2025, 9, 25)
        assert parse_value(DataType.DECIMAL, "12.50") == Decimal("12.50")
        assert parse_value(DataType.BOOLEAN, "True") is True

    def test_naive_timestamp_is_utc(self):
        parsed = parse_value(DataType.TIMESTAMP, "2025-09-24 10:15")
        assert parsed == datetime(2025, 9, 24, 10, 15, tzinfo=timezone.utc)

    def test_timestamp_reduces_to_date(self):
        parsed = parse_value(DataType.TIMESTAMP, "2025-09-24T23:59:59Z")
        assert as_date(parsed) == date(2025, 9, 24)
        assert as_date(date(2025, 9, 24)) == date(2025, 9, 24)

    def test_invalid_date(self):
        with pytest.raises(ValueError):
            parse_value(DataType.DATE, "2025-13-01")
