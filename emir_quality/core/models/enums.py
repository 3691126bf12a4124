"""
Closed value sets shared by the models.
"""

from enum import Enum


class DataType(str, Enum):
    STRING = "string"
    DATE = "date"
    TIMESTAMP = "timestamp"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"


class ValidationPhase(str, Enum):
    COMPLETENESS = "COMPLETENESS"
    FORMAT = "FORMAT"
    LOGICAL = "LOGICAL"


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    MAJOR = "MAJOR"
    MINOR = "MINOR"


class TrafficLight(str, Enum):
    GREEN = "GREEN"
    AMBER = "AMBER"
    RED = "RED"


class RunStatus(str, Enum):
    """Externally visible status of a report run."""

    INITIATED = "INITIATED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PipelineState(str, Enum):
    """States of the orchestrator's finite-state machine."""

    INITIATED = "INITIATED"
    COMPLETENESS = "COMPLETENESS"
    FORMAT_AND_LOGICAL = "FORMAT_AND_LOGICAL"
    SCORING = "SCORING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.COMPLETED, PipelineState.FAILED)

    @property
    def run_status(self) -> RunStatus:
        if self is PipelineState.INITIATED:
            return RunStatus.INITIATED
        if self is PipelineState.COMPLETED:
            return RunStatus.COMPLETED
        if self is PipelineState.FAILED:
            return RunStatus.FAILED
        return RunStatus.IN_PROGRESS
