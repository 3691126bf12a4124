"""
FieldDefinition and Schema models describing the EMIR REFIT record layout.
"""

from functools import cached_property

from pydantic import BaseModel, Field, field_validator

from .enums import DataType

IDENTIFIER_CATEGORY = "identifier"


class FieldDefinition(BaseModel):
    """
    One column of the EMIR REFIT record layout.

    Attributes:
        name: Unique snake_case field name (also the input header)
        mandatory: Whether absence triggers a completeness finding
        data_type: Tagged type variant (string, date, timestamp, decimal, boolean)
        category: Field category used for category scores
        format_rule_id: Optional format rule bound to this field
        description: Human-readable description
        position: 0-based column position within the schema
    """

    name: str = Field(..., min_length=1, pattern=r"^[a-z][a-z0-9_]*$")
    mandatory: bool = False
    data_type: DataType = DataType.STRING
    category: str = Field(..., min_length=1)
    format_rule_id: str | None = None
    description: str | None = None
    position: int = Field(0, ge=0)

    @property
    def is_identifier(self) -> bool:
        return self.category == IDENTIFIER_CATEGORY

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "name": "counterparty_1",
                "mandatory": True,
                "data_type": "string",
                "category": "identifier",
                "format_rule_id": "LEI_FORMAT",
                "description": "Reporting counterparty LEI (20 chars)",
                "position": 2,
            }
        }


class Schema(BaseModel):
    """
    Ordered, versioned, immutable set of field definitions.

    Loaded once per run by the SchemaRegistry and shared read-only by all
    validators and shard workers.
    """

    version: str = Field(..., min_length=1)
    definitions: tuple[FieldDefinition, ...]

    @field_validator("definitions")
    @classmethod
    def check_unique_names(cls, v):
        """Reject duplicate field names."""
        seen: set[str] = set()
        duplicates = []
        for definition in v:
            if definition.name in seen:
                duplicates.append(definition.name)
            seen.add(definition.name)
        if duplicates:
            raise ValueError(f"Duplicate field names: {sorted(set(duplicates))}")
        return v

    @cached_property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.definitions)

    @cached_property
    def _by_name(self) -> dict[str, FieldDefinition]:
        return {f.name: f for f in self.definitions}

    @cached_property
    def mandatory_fields(self) -> tuple[FieldDefinition, ...]:
        return tuple(f for f in self.definitions if f.mandatory)

    @cached_property
    def categories(self) -> tuple[str, ...]:
        """Categories in first-appearance order."""
        return tuple(dict.fromkeys(f.category for f in self.definitions))

    def get(self, name: str) -> FieldDefinition | None:
        return self._by_name.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self.definitions)

    def fields_in_category(self, category: str) -> tuple[FieldDefinition, ...]:
        return tuple(f for f in self.definitions if f.category == category)

    class Config:
        frozen = True
