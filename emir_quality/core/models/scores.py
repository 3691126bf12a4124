"""
Score models produced by the scoring engine.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field, model_validator

from .enums import TrafficLight


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordScore(BaseModel):
    """
    Accuracy score of one record.

    Attributes:
        record_id: Scored record
        penalty_points: Sum of severity weights of the record's findings
        accuracy_score: clamp(100 - penalty_points, 0, 100)
        finding_ids: Findings that contributed, sorted
    """

    record_id: str
    penalty_points: int = Field(..., ge=0)
    accuracy_score: float = Field(..., ge=0.0, le=100.0)
    finding_ids: tuple[str, ...] = ()

    class Config:
        frozen = True


class FieldScore(BaseModel):
    """Share of records in which a field carries no finding."""

    field_name: str
    category: str
    invalid_records: int = Field(..., ge=0)
    validity_score: float = Field(..., ge=0.0, le=100.0)

    class Config:
        frozen = True


class CategoryScore(BaseModel):
    """
    Average field-level validity rate of a category, as a percentage.

    Attributes:
        category: Category name
        field_count: Number of schema fields in the category
        invalid_field_values: (record, field) pairs in the category with findings
        score: Mean validity x 100 over all fields and records
    """

    category: str
    field_count: int = Field(..., ge=0)
    invalid_field_values: int = Field(0, ge=0)
    score: float = Field(..., ge=0.0, le=100.0)

    class Config:
        frozen = True


class OverallScore(BaseModel):
    """
    Report-level accuracy summary.

    Attributes:
        total_records: Records evaluated by the pipeline
        records_with_errors: Records carrying at least one finding
        critical_count / major_count / minor_count: Findings per severity
        total_penalty_points: Sum of all severity weights
        overall_accuracy_score: 100 - penalty / (records x 100) x 100, clamped
        traffic_light: GREEN (>= 95), AMBER ([85, 95)), RED (< 85)
        unparseable_records: Rows excluded because they could not be parsed
    """

    total_records: int = Field(..., ge=0)
    records_with_errors: int = Field(..., ge=0)
    critical_count: int = Field(0, ge=0)
    major_count: int = Field(0, ge=0)
    minor_count: int = Field(0, ge=0)
    total_penalty_points: int = Field(0, ge=0)
    overall_accuracy_score: float = Field(..., ge=0.0, le=100.0)
    traffic_light: TrafficLight
    unparseable_records: int = Field(0, ge=0)
    calculated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def check_error_count(self):
        """records_with_errors can never exceed total_records."""
        if self.records_with_errors > self.total_records:
            raise ValueError(
                f"records_with_errors ({self.records_with_errors}) exceeds "
                f"total_records ({self.total_records})"
            )
        return self

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "total_records": 1000000,
                "records_with_errors": 15230,
                "critical_count": 1250,
                "major_count": 5230,
                "minor_count": 12340,
                "total_penalty_points": 63330,
                "overall_accuracy_score": 99.9367,
                "traffic_light": "GREEN",
                "unparseable_records": 0,
            }
        }


class ScoreReport(BaseModel):
    """Everything the scoring phase publishes for one report run."""

    overall: OverallScore
    category_scores: tuple[CategoryScore, ...] = ()
    field_scores: tuple[FieldScore, ...] = ()
    record_scores: tuple[RecordScore, ...] = ()

    class Config:
        frozen = True
