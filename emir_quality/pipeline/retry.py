"""
Phase-level retry with exponential backoff.
"""

import threading
from collections.abc import Callable
from typing import TypeVar

from pydantic import BaseModel, Field

from emir_quality.core.errors import EmirQualityError, PhaseFailedError, RunCancelledError
from emir_quality.observability.logger import get_logger
from emir_quality.observability.metrics import MetricsCollector

logger = get_logger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """
    Retry settings for a pipeline phase.

    Attributes:
        max_retries: Retries after the first attempt (3 -> 4 attempts)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay
    """

    max_retries: int = Field(3, ge=0)
    base_delay: float = Field(1.0, ge=0.0)
    max_delay: float = Field(60.0, ge=0.0)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt ``attempt`` (1-based): base x 2^(attempt-1), capped."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    class Config:
        frozen = True


def is_retryable(error: BaseException) -> bool:
    """
    Engine errors carry their own ``retryable`` flag; unexpected errors (I/O
    and the like) are retried. Decoding errors are deterministic and fail
    the phase at once.
    """
    if isinstance(error, EmirQualityError):
        return error.retryable
    if isinstance(error, UnicodeError):
        return False
    return isinstance(error, Exception)


def run_with_retry(
    func: Callable[[], T],
    phase: str,
    policy: RetryPolicy,
    cancel: threading.Event | None = None,
    sleep: Callable[[float], None] | None = None,
    metrics: MetricsCollector | None = None,
    execution_id: str | None = None,
) -> T:
    """
    Call ``func`` until it succeeds, the policy is exhausted or a
    non-retryable error occurs.

    Args:
        func: One attempt of the phase
        phase: Phase name for logs, metrics and errors
        policy: Retry policy
        cancel: Cancellation signal; interrupts backoff waits
        sleep: Sleep function (defaults to waiting on ``cancel``)
        metrics: Metrics collector
        execution_id: Run id for log context

    Returns:
        The result of the first successful attempt

    Raises:
        RunCancelledError: If the run was cancelled
        PhaseFailedError: With the number of attempts and the first error
    """
    metrics = metrics or MetricsCollector()
    cancel = cancel or threading.Event()
    first_error: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        if cancel.is_set():
            raise RunCancelledError(f"{phase} cancelled")
        try:
            return func()
        except RunCancelledError:
            raise
        except Exception as e:
            if first_error is None:
                first_error = e
            if not is_retryable(e):
                logger.error(
                    f"{phase} failed with a non-retryable error",
                    extra={"execution_id": execution_id, "phase": phase, "attempt": attempt,
                           "error_type": type(e).__name__, "error_message": str(e)},
                )
                raise PhaseFailedError(phase, attempt, first_error) from e
            if attempt >= policy.max_attempts:
                logger.error(
                    f"{phase} failed after {attempt} attempts",
                    extra={"execution_id": execution_id, "phase": phase, "attempt": attempt,
                           "error_type": type(e).__name__, "error_message": str(e)},
                )
                raise PhaseFailedError(phase, attempt, first_error) from e

            delay = policy.delay_for(attempt)
            logger.warning(
                f"{phase} attempt {attempt} failed, retrying in {delay:.2f}s",
                extra={"execution_id": execution_id, "phase": phase, "attempt": attempt,
                       "error_type": type(e).__name__, "error_message": str(e)},
            )
            metrics.record_retry(phase)
            if sleep is not None:
                sleep(delay)
            elif cancel.wait(delay):
                raise RunCancelledError(f"{phase} cancelled") from e
