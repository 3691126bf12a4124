"""
TradeRecord model representing one row of an EMIR trade report (ephemeral).
"""

from datetime import date

from pydantic import BaseModel, Field


class TradeRecord(BaseModel):
    """
    A single trade report row being validated (ephemeral, never mutated).

    Attributes:
        uti: Unique Transaction Identifier, the record's identity key
        report_date: Report date, the partition key of the batch
        row_number: 1-based data row number within the source
        values: Raw string value per field name, exactly as read
    """

    uti: str = ""
    report_date: date
    row_number: int = Field(..., ge=1)
    values: dict[str, str | None] = Field(default_factory=dict)

    @property
    def record_id(self) -> str:
        """Identity of this row; stays unique when two rows share a UTI."""
        return f"{self.uti}#{self.row_number}"

    def raw(self, field_name: str) -> str | None:
        """Return the value of a field, treating whitespace-only as absent."""
        value = self.values.get(field_name)
        if value is None:
            return None
        if value.strip() == "":
            return None
        return value

    def has(self, field_name: str) -> bool:
        return self.raw(field_name) is not None

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "uti": "UTI0000000000000000001",
                "report_date": "2025-09-25",
                "row_number": 1,
                "values": {
                    "uti": "UTI0000000000000000001",
                    "counterparty_1": "5493001KJTIIGC8Y1R12",
                    "execution_timestamp": "2025-09-24T10:15:00Z",
                },
            }
        }
