"""
Report run orchestration: state machine, retries and phase sequencing.
"""

from .orchestrator import PipelineOrchestrator
from .retry import RetryPolicy, is_retryable, run_with_retry
from .state_machine import TRANSITIONS, RunStateMachine

__all__ = [
    "PipelineOrchestrator",
    "RetryPolicy",
    "is_retryable",
    "run_with_retry",
    "TRANSITIONS",
    "RunStateMachine",
]
