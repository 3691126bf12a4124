"""
Unit tests for phase-level retry.
"""

import threading

import pytest

from emir_quality.core.errors import (
    PersistenceError,
    PhaseFailedError,
    RunCancelledError,
    SchemaMismatchError,
    SourceReadError,
)
from emir_quality.pipeline import RetryPolicy, is_retryable, run_with_retry


class Flaky:
    """Raises the given errors in turn, then returns 'ok'"""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


@pytest.mark.unit
class TestRetryPolicy:
    """Tests for RetryPolicy"""

    def test_defaults(self):
        policy = RetryPolicy()

        assert policy.max_retries == 3
        assert policy.max_attempts == 4

    def test_exponential_delays(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=60.0)

        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_delay_capped(self):
        assert RetryPolicy(base_delay=10.0, max_delay=15.0).delay_for(3) == 15.0

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)


@pytest.mark.unit
class TestIsRetryable:
    """Tests for error classification"""

    @pytest.mark.parametrize(
        "error,expected",
        [
            (SourceReadError("disk"), True),
            (PersistenceError("db"), True),
            (OSError("io"), True),
            (SchemaMismatchError("header"), False),
            (UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"), False),
        ],
    )
    def test_classification(self, error, expected):
        assert is_retryable(error) is expected


@pytest.mark.unit
class TestRunWithRetry:
    """Tests for run_with_retry"""

    def test_success_first_time(self):
        func = Flaky()
        assert run_with_retry(func, "COMPLETENESS", RetryPolicy(), sleep=lambda s: None) == "ok"
        assert func.calls == 1

    def test_retries_transient_errors(self):
        delays = []
        func = Flaky(SourceReadError("a"), SourceReadError("b"))

        result = run_with_retry(func, "COMPLETENESS", RetryPolicy(base_delay=0.5), sleep=delays.append)

        assert result == "ok"
        assert func.calls == 3
        assert delays == [0.5, 1.0]

    def test_gives_up_after_max_retries(self):
        func = Flaky(*[SourceReadError(f"attempt {n}") for n in range(10)])

        with pytest.raises(PhaseFailedError) as exc_info:
            run_with_retry(func, "COMPLETENESS", RetryPolicy(max_retries=3), sleep=lambda s: None)

        error = exc_info.value
        assert func.calls == 4
        assert error.retry_count == 3
        assert str(error.first_error) == "attempt 0"

    def test_non_retryable_fails_immediately(self):
        func = Flaky(SchemaMismatchError("field order differs"))

        with pytest.raises(PhaseFailedError) as exc_info:
            run_with_retry(func, "COMPLETENESS", RetryPolicy(), sleep=lambda s: None)

        assert func.calls == 1
        assert exc_info.value.retry_count == 0
        assert isinstance(exc_info.value.first_error, SchemaMismatchError)

    def test_cancel_before_start(self):
        cancel = threading.Event()
        cancel.set()
        func = Flaky()

        with pytest.raises(RunCancelledError):
            run_with_retry(func, "SCORING", RetryPolicy(), cancel=cancel)
        assert func.calls == 0

    def test_cancel_interrupts_backoff(self):
        cancel = threading.Event()

        def fail_and_cancel():
            cancel.set()
            raise SourceReadError("gone")

        with pytest.raises(RunCancelledError):
            run_with_retry(fail_and_cancel, "COMPLETENESS", RetryPolicy(base_delay=30.0), cancel=cancel)

    def test_cancelled_error_is_not_retried(self):
        func = Flaky(RunCancelledError("stop"))

        with pytest.raises(RunCancelledError):
            run_with_retry(func, "COMPLETENESS", RetryPolicy(), sleep=lambda s: None)
        assert func.calls == 1
