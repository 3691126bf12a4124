"""
Validation phases and their sharded execution.
"""

from .base import PhaseResult, PhaseValidator
from .completeness import MISSING_IDENTIFIER, MISSING_MANDATORY_FIELD, CompletenessValidator
from .format import DuplicatePolicy, FormatValidator
from .ledger import FindingLedger
from .logical import LogicalValidator
from .sharding import ShardedExecutor, shard_for

__all__ = [
    "PhaseResult",
    "PhaseValidator",
    "MISSING_IDENTIFIER",
    "MISSING_MANDATORY_FIELD",
    "CompletenessValidator",
    "DuplicatePolicy",
    "FormatValidator",
    "FindingLedger",
    "LogicalValidator",
    "ShardedExecutor",
    "shard_for",
]
