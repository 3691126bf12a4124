"""
ReportRun model tracking one execution of the validation pipeline.
"""

import uuid
from datetime import date, datetime, timezone

from pydantic import BaseModel, Field

from .enums import PipelineState, RunStatus, ValidationPhase
from .scores import OverallScore


class RunFailure(BaseModel):
    """
    User-visible description of why a run failed.

    Attributes:
        phase: Pipeline state in which the failure happened
        branch: Validation phase that failed inside FORMAT_AND_LOGICAL
        retry_count: Retries spent before giving up
        error_type: Class name of the first contributing error
        error_message: Message of the first contributing error
    """

    phase: PipelineState
    branch: ValidationPhase | None = None
    retry_count: int = Field(0, ge=0)
    error_type: str
    error_message: str

    class Config:
        frozen = True


class ReportRun(BaseModel):
    """
    One execution of the pipeline for a report date.

    Mutated only through the orchestrator's RunStateMachine; terminal states
    (COMPLETED, FAILED) are never modified.

    Attributes:
        execution_id: UUID of this execution
        report_date: Partition key of the validated batch
        state: Current state-machine state
        transitions: Timestamp of entry into each state
        overall_score: Final score (only set on COMPLETED)
        failure: Failure details (only set on FAILED)
        unparseable_records: Rows excluded from evaluation
        started_at: When the run was created
    """

    execution_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    report_date: date
    state: PipelineState = PipelineState.INITIATED
    transitions: dict[PipelineState, datetime] = Field(default_factory=dict)
    overall_score: OverallScore | None = None
    failure: RunFailure | None = None
    unparseable_records: int = Field(0, ge=0)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def status(self) -> RunStatus:
        return self.state.run_status

    @property
    def report_execution_id(self) -> str:
        """Composite key used by result stores: ``<report_date>#<execution_id>``."""
        return f"{self.report_date.isoformat()}#{self.execution_id}"

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    class Config:
        json_schema_extra = {
            "example": {
                "execution_id": "6f1c2b1e-8a4f-4d0e-9c55-1f2e3d4c5b6a",
                "report_date": "2025-09-25",
                "state": "COMPLETED",
                "transitions": {
                    "INITIATED": "2025-09-25T06:00:00Z",
                    "COMPLETENESS": "2025-09-25T06:00:01Z",
                    "FORMAT_AND_LOGICAL": "2025-09-25T06:04:12Z",
                    "SCORING": "2025-09-25T06:11:40Z",
                    "COMPLETED": "2025-09-25T06:11:52Z",
                },
            }
        }
