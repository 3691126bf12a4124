"""
Pytest configuration and fixtures for emir-quality tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import csv
import os
import shutil
from datetime import date
from pathlib import Path
from typing import Callable, Generator

import psycopg
import pytest

from emir_quality.config.settings import DEFAULT_CONFIG_DIR
from emir_quality.core.models import DataType, FieldDefinition, Schema
from emir_quality.core.reference import load_currency_codes
from emir_quality.core.rules import RuleCatalog, RuleCatalogLoader
from emir_quality.core.schema import SchemaRegistry

REPORT_DATE = date(2025, 9, 25)

VALID_LEI = "5493001KJTIIGC8Y1R12"
VALID_ISIN = "US0378331005"

# Sample values for regex-checked format rules
REGEX_SAMPLES = {
    "UTI_FORMAT": "UTI0000000000000000001",
    "UPI_FORMAT": "QZ1234567890",
    "COUNTRY_CODE": "DE",
    "MIC_CODE": "XEUR",
}

TYPE_SAMPLES = {
    DataType.STRING: "SAMPLE",
    DataType.DATE: "2025-09-25",
    DataType.TIMESTAMP: "2025-09-24T10:15:00Z",
    DataType.DECIMAL: "1000000.00",
    DataType.BOOLEAN: "true",
}

# Values that keep the cross-field rules satisfied; each swap leg reports one rate
RECORD_OVERRIDES = {
    "expiration_date": "2030-09-25",
    "early_termination_date": "2028-03-31",
    "leg1_fixed_rate": "0.0325",
    "leg1_floating_rate": "",
    "leg2_fixed_rate": "",
    "leg2_floating_rate": "EURIBOR",
}


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# SCHEMA & CATALOG FIXTURES
# =======================

@pytest.fixture(scope="session")
def config_dir() -> Path:
    return DEFAULT_CONFIG_DIR


@pytest.fixture(scope="session")
def schema(config_dir) -> Schema:
    """The shipped v1 schema (203 fields)"""
    return SchemaRegistry(config_dir / "schema").load("v1")


@pytest.fixture(scope="session")
def currency_codes(config_dir) -> frozenset[str]:
    return load_currency_codes(config_dir / "reference")


@pytest.fixture(scope="session")
def catalog(config_dir, schema) -> RuleCatalog:
    """The shipped rule catalog, checked against the v1 schema"""
    return RuleCatalogLoader(config_dir / "rules" / "emir_rules.yaml").load(schema)


def sample_value(definition: FieldDefinition, catalog: RuleCatalog) -> str:
    """A value that passes every format rule bound to the field"""
    rule = catalog.format_rule(definition.format_rule_id) if definition.format_rule_id else None
    if rule is None:
        return TYPE_SAMPLES[definition.data_type]
    if rule.check == "lei":
        return VALID_LEI
    if rule.check == "isin":
        return VALID_ISIN
    if rule.check == "currency":
        return "EUR"
    if rule.check == "enum":
        return str(rule.params["values"][0])
    return REGEX_SAMPLES[rule.id]


@pytest.fixture(scope="session")
def valid_values(schema, catalog) -> dict[str, str]:
    """
    A record that passes every completeness, format and logical rule.

    Every field holds a valid value except `leg1_floating_rate` and
    `leg2_fixed_rate`, which stay empty: a swap leg reports exactly one of
    its fixed and floating rates.
    """
    values = {definition.name: sample_value(definition, catalog) for definition in schema.definitions}
    values.update(RECORD_OVERRIDES)
    return values


@pytest.fixture
def make_values(valid_values) -> Callable[..., dict[str, str]]:
    """
    Factory for record values: a valid record with a given UTI and overrides

    Usage:
        values = make_values("UTI1", counterparty_1="1234")
    """

    def _make(uti: str = "UTI0000000000000000001", **overrides: str) -> dict[str, str]:
        values = dict(valid_values)
        values["uti"] = uti
        values.update(overrides)
        return values

    return _make


# =======================
# FILE FIXTURES
# =======================

@pytest.fixture
def write_report(tmp_path, schema) -> Callable[..., Path]:
    """
    Factory writing a delimited report file with the schema header

    Rows are field-name -> value mappings, or raw lists written as-is.
    """

    def _write(rows: list, name: str = "report.csv", header: list[str] | None = None) -> Path:
        path = tmp_path / name
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(header if header is not None else list(schema.field_names))
            for row in rows:
                if isinstance(row, dict):
                    writer.writerow([row.get(field_name, "") for field_name in schema.field_names])
                else:
                    writer.writerow(row)
        return path

    return _write


# =======================
# SPARK FIXTURES
# =======================

@pytest.fixture(scope="session")
def spark_session():
    """
    Create a Spark session for testing with local mode

    Yields:
        SparkSession configured for local testing
    """
    if shutil.which("java") is None and not os.getenv("JAVA_HOME"):
        pytest.skip("Java is not available for Spark")
    pyspark_sql = pytest.importorskip("pyspark.sql")

    spark = (
        pyspark_sql.SparkSession.builder
        .appName("emir-quality-test")
        .master("local[2]")
        .config("spark.sql.shuffle.partitions", "2")
        .config("spark.driver.memory", "1g")
        .config("spark.ui.enabled", "false")  # Disable UI for tests
        .getOrCreate()
    )

    # Set log level to WARN to reduce test output noise
    spark.sparkContext.setLogLevel("WARN")

    yield spark

    spark.stop()


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance with initialized result tables
    """
    postgres_module = pytest.importorskip("testcontainers.postgres")

    container = postgres_module.PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_emir",
        password="test_password",
        dbname="test_emir_quality",
        driver=None,
    )
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")

    try:
        init_sql_path = Path(__file__).resolve().parent.parent / "docker" / "init-db.sql"
        with psycopg.connect(container.get_connection_url()) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql_path.read_text())
            conn.commit()

        yield container
    finally:
        container.stop()


@pytest.fixture(scope="function")
def db_connection(postgres_container) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a database connection for a single test

    Yields:
        psycopg Connection object
    """
    with psycopg.connect(postgres_container.get_connection_url()) as conn:
        yield conn
        conn.rollback()


@pytest.fixture(scope="function")
def clean_db(db_connection) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a clean database by truncating all result tables before each test

    Yields:
        psycopg Connection object with clean database
    """
    with db_connection.cursor() as cur:
        cur.execute(
            "TRUNCATE TABLE validation_findings, record_scores, field_scores, "
            "category_scores, overall_scores, report_runs CASCADE"
        )
    db_connection.commit()

    yield db_connection


@pytest.fixture(scope="function")
def db_pool(postgres_container):
    """Open DatabaseConnectionPool against the test container"""
    from emir_quality.warehouse.connection import DatabaseConnectionPool

    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_emir_quality",
        user="test_emir",
        password="test_password",
    )
    pool.open()
    yield pool
    pool.close()
