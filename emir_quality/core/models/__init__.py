"""
Core data models for the EMIR trade data quality engine.

All models use Pydantic for runtime validation and type safety.
"""

from .enums import DataType, PipelineState, RunStatus, Severity, TrafficLight, ValidationPhase
from .field_definition import IDENTIFIER_CATEGORY, FieldDefinition, Schema
from .report_run import ReportRun, RunFailure
from .scores import CategoryScore, FieldScore, OverallScore, RecordScore, ScoreReport
from .trade_record import TradeRecord
from .validation_finding import ValidationFinding, make_finding_id

__all__ = [
    "DataType",
    "PipelineState",
    "RunStatus",
    "Severity",
    "TrafficLight",
    "ValidationPhase",
    "IDENTIFIER_CATEGORY",
    "FieldDefinition",
    "Schema",
    "ReportRun",
    "RunFailure",
    "CategoryScore",
    "FieldScore",
    "OverallScore",
    "RecordScore",
    "ScoreReport",
    "TradeRecord",
    "ValidationFinding",
    "make_finding_id",
]
