"""
Schema registry for the EMIR REFIT record layout.

Loads versioned schema definitions from YAML files in the schema directory
(``emir_refit_<version>.yaml``) and keeps each loaded version as an immutable
Schema shared read-only by all validators.
"""

import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from emir_quality.core.errors import SchemaLoadError
from emir_quality.core.models import FieldDefinition, Schema
from emir_quality.observability.logger import get_logger

logger = get_logger(__name__)

EXPECTED_FIELD_COUNT = 203
SCHEMA_FILE_PATTERN = "emir_refit_{version}.yaml"


class SchemaRegistry:
    """
    Registry of schema versions.

    A version is read from disk once; later ``load`` calls return the same
    Schema object. Schemas are never mutated after load.
    """

    def __init__(self, schema_dir: str | Path, expected_field_count: int = EXPECTED_FIELD_COUNT):
        """
        Initialize schema registry.

        Args:
            schema_dir: Directory holding ``emir_refit_<version>.yaml`` files
            expected_field_count: Number of active fields every version must define
        """
        self.schema_dir = Path(schema_dir)
        self.expected_field_count = expected_field_count
        self._schemas: dict[str, Schema] = {}
        self._lock = threading.Lock()

    def load(self, version: str) -> Schema:
        """
        Load a schema version.

        Args:
            version: Schema version (e.g. "v1")

        Returns:
            Immutable Schema

        Raises:
            SchemaLoadError: If the file is missing or malformed, the field
                count is wrong, or field names are duplicated
        """
        with self._lock:
            schema = self._schemas.get(version)
            if schema is None:
                schema = self._read_schema(version)
                self._schemas[version] = schema
            return schema

    def list_versions(self) -> list[str]:
        """List schema versions available in the schema directory."""
        prefix, suffix = SCHEMA_FILE_PATTERN.split("{version}")
        return sorted(
            path.name[len(prefix):-len(suffix)]
            for path in self.schema_dir.glob(SCHEMA_FILE_PATTERN.format(version="*"))
        )

    def _read_schema(self, version: str) -> Schema:
        path = self.schema_dir / SCHEMA_FILE_PATTERN.format(version=version)
        if not path.exists():
            raise SchemaLoadError(f"Schema version '{version}' not found at {path}")

        try:
            with open(path) as f:
                document = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SchemaLoadError(f"Schema file {path} is not valid YAML: {e}") from e

        if not document or "fields" not in document:
            raise SchemaLoadError(f"Schema file {path} must contain a 'fields' section")

        schema = self.build_schema(document.get("version", version), document["fields"])
        logger.info(
            f"Loaded schema {schema.version}",
            extra={
                "schema_version": schema.version,
                "field_count": len(schema),
                "mandatory_count": len(schema.mandatory_fields),
            },
        )
        return schema

    def build_schema(self, version: str, entries: list[dict[str, Any]]) -> Schema:
        """
        Build and check a Schema from raw field entries.

        Raises:
            SchemaLoadError: If any entry is invalid, names repeat or the
                field count differs from the expected count
        """
        if not isinstance(entries, list):
            raise SchemaLoadError("Schema 'fields' must be a list")

        definitions = []
        for position, entry in enumerate(entries):
            definitions.append(self._parse_field(entry, position))

        names = [d.name for d in definitions]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise SchemaLoadError(f"Schema {version} has duplicate field names: {duplicates}")

        if len(definitions) != self.expected_field_count:
            raise SchemaLoadError(
                f"Schema {version} defines {len(definitions)} fields, "
                f"expected exactly {self.expected_field_count}"
            )

        return Schema(version=str(version), definitions=tuple(definitions))

    def _parse_field(self, entry: dict[str, Any], position: int) -> FieldDefinition:
        if not isinstance(entry, dict):
            raise SchemaLoadError(f"Field entry at position {position} must be a mapping")
        try:
            return FieldDefinition(
                name=entry.get("name"),
                mandatory=entry.get("mandatory", False),
                data_type=entry.get("type", "string"),
                category=entry.get("category"),
                format_rule_id=entry.get("format_rule"),
                description=entry.get("description"),
                position=position,
            )
        except ValidationError as e:
            raise SchemaLoadError(f"Invalid field definition at position {position}: {e}") from e
