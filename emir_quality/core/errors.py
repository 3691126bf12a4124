"""
Exception taxonomy for the quality engine.

Record-level errors are recovered where they occur and tallied; phase-level
and schema-level errors propagate to the orchestrator, which decides between
retry and failure using the ``retryable`` flag.
"""


class EmirQualityError(Exception):
    """Base class for all engine errors."""

    retryable = False


class SchemaLoadError(EmirQualityError):
    """Raised when a schema definition file is missing or inconsistent."""


class SchemaMismatchError(EmirQualityError):
    """Raised when an input header does not match the schema field order."""

    def __init__(self, message: str, missing: list[str] | None = None, unexpected: list[str] | None = None):
        self.missing = missing or []
        self.unexpected = unexpected or []
        super().__init__(message)


class RuleCatalogError(EmirQualityError):
    """Raised when the rule catalog is invalid or references unknown checks."""


class RecordParseError(EmirQualityError):
    """Raised when a single record cannot be parsed for evaluation."""

    def __init__(self, message: str, record_id: str | None = None, field_name: str | None = None):
        self.record_id = record_id
        self.field_name = field_name
        super().__init__(message)


class RuleEvaluationError(EmirQualityError):
    """
    Raised when a rule's own logic fails.

    Distinguishes "the rule is broken" from "the record is invalid"; never
    swallowed.
    """

    def __init__(self, rule_id: str, record_id: str, cause: BaseException):
        self.rule_id = rule_id
        self.record_id = record_id
        self.cause = cause
        super().__init__(f"Rule '{rule_id}' failed on record '{record_id}': {type(cause).__name__}: {cause}")


class PersistenceError(EmirQualityError):
    """Transient failure writing to the result sink."""

    retryable = True


class SourceReadError(EmirQualityError):
    """Transient failure reading from the record source."""

    retryable = True


class InvalidTransitionError(EmirQualityError):
    """Raised when a report run is asked to make an illegal state transition."""


class RunCancelledError(EmirQualityError):
    """Raised inside a phase when the run's cancellation signal is set."""


class PhaseFailedError(EmirQualityError):
    """
    Raised when a phase is declared failed.

    Attributes:
        phase: Name of the failing phase
        attempts: Number of attempts made (1 + retries)
        first_error: The first error that contributed to the failure
    """

    def __init__(self, phase: str, attempts: int, first_error: BaseException):
        self.phase = phase
        self.attempts = attempts
        self.first_error = first_error
        super().__init__(
            f"Phase {phase} failed after {attempts} attempt(s): "
            f"{type(first_error).__name__}: {first_error}"
        )

    @property
    def retry_count(self) -> int:
        return max(0, self.attempts - 1)
