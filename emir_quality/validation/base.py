"""
Common interface of the three validation phases.
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from emir_quality.core.models import TradeRecord, ValidationFinding, ValidationPhase


class PhaseValidator(ABC):
    """
    A validation phase applied record by record.

    The sharded executor creates one state object per shard with
    ``new_shard_state`` and passes it back for every record of that shard, in
    source order. Validators with batch-wide checks keep them in that state;
    records are routed by UTI, so per-shard state sees every occurrence of a
    UTI.
    """

    phase: ValidationPhase

    def new_shard_state(self) -> Any:
        return None

    @abstractmethod
    def validate_record(self, record: TradeRecord, state: Any) -> list[ValidationFinding]:
        """
        Evaluate one record.

        Raises:
            RecordParseError: If the record cannot be evaluated; the record is
                excluded from this phase and counted
            RuleEvaluationError: If a rule itself is broken (fatal)
        """


class PhaseResult(BaseModel):
    """
    Outcome of one phase attempt.

    Attributes:
        phase: Phase that ran
        records_processed: Records evaluated (including excluded ones)
        skipped_rows: Source rows that could not be parsed into records
        excluded_records: Records the phase could not evaluate
        findings_added: Findings newly added to the ledger
    """

    phase: ValidationPhase
    records_processed: int = Field(0, ge=0)
    skipped_rows: int = Field(0, ge=0)
    excluded_records: int = Field(0, ge=0)
    findings_added: int = Field(0, ge=0)

    @property
    def unparseable_records(self) -> int:
        return self.skipped_rows + self.excluded_records

    class Config:
        frozen = True
