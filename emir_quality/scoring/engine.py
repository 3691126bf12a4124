"""
Scoring engine: turns the immutable finding set of a run into scores.

All functions here are pure. The same findings always give the same scores,
whatever order they arrive in.
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal

from emir_quality.core.models import (
    CategoryScore,
    FieldScore,
    OverallScore,
    RecordScore,
    Schema,
    ScoreReport,
    Severity,
    TrafficLight,
    ValidationFinding,
)
from emir_quality.core.rules import DEFAULT_SEVERITY_WEIGHTS
from emir_quality.observability.logger import get_logger

logger = get_logger(__name__)

MAX_SCORE = 100.0
GREEN_THRESHOLD = 95.0
AMBER_THRESHOLD = 85.0
SCORE_PRECISION = Decimal("0.0001")


def round_score(value: Decimal | float) -> float:
    """Clamp to [0, 100] and round half-up to 4 decimals."""
    clamped = min(max(Decimal(str(value)), Decimal(0)), Decimal(100))
    return float(clamped.quantize(SCORE_PRECISION, rounding=ROUND_HALF_UP))


def traffic_light(score: float) -> TrafficLight:
    """GREEN at or above 95, AMBER in [85, 95), RED below 85."""
    if score >= GREEN_THRESHOLD:
        return TrafficLight.GREEN
    if score >= AMBER_THRESHOLD:
        return TrafficLight.AMBER
    return TrafficLight.RED


def penalty_points(severity_counts: Mapping[Severity, int], weights: Mapping[Severity, int] = DEFAULT_SEVERITY_WEIGHTS) -> int:
    return sum(count * weights[severity] for severity, count in severity_counts.items())


def compute_overall_score(
    total_records: int,
    severity_counts: Mapping[Severity, int],
    weights: Mapping[Severity, int] = DEFAULT_SEVERITY_WEIGHTS,
) -> float:
    """
    Overall accuracy: 100 - penalty / (records x 100) x 100, clamped and
    rounded to 4 decimals. An empty batch scores 100.

    >>> compute_overall_score(1_000_000, {Severity.CRITICAL: 1250, Severity.MAJOR: 5230, Severity.MINOR: 12340})
    99.9367
    """
    if total_records <= 0:
        return MAX_SCORE
    penalty = Decimal(penalty_points(severity_counts, weights))
    return round_score(Decimal(100) - penalty / Decimal(total_records))


def record_accuracy(points: int) -> float:
    return max(0.0, MAX_SCORE - points)


class ScoringEngine:
    """
    Computes record, field, category and overall scores for a run.
    """

    def __init__(self, schema: Schema, weights: Mapping[Severity, int] | None = None):
        """
        Initialize the engine.

        Args:
            schema: Schema giving the fields and categories to score
            weights: Penalty points per severity (defaults to 10/5/2)
        """
        self.schema = schema
        self.weights = dict(weights or DEFAULT_SEVERITY_WEIGHTS)

    def score(
        self,
        findings: Iterable[ValidationFinding],
        total_records: int,
        unparseable_records: int = 0,
    ) -> ScoreReport:
        """
        Score a run.

        Args:
            findings: Every finding of the run (duplicates by finding_id are ignored)
            total_records: Records evaluated by the pipeline
            unparseable_records: Rows excluded from evaluation (reported only)

        Returns:
            ScoreReport; record scores only for records with findings
        """
        unique = {f.finding_id: f for f in findings}
        ordered = [unique[key] for key in sorted(unique)]

        by_record: dict[str, list[ValidationFinding]] = defaultdict(list)
        invalid_records_by_field: dict[str, set[str]] = defaultdict(set)
        severity_counts = {severity: 0 for severity in Severity}
        for finding in ordered:
            by_record[finding.record_id].append(finding)
            severity_counts[finding.severity] += 1
            if finding.field_name is not None:
                invalid_records_by_field[finding.field_name].add(finding.record_id)

        record_scores = tuple(
            self._record_score(record_id, by_record[record_id]) for record_id in sorted(by_record)
        )
        field_scores = tuple(
            self._field_score(definition.name, definition.category, len(invalid_records_by_field.get(definition.name, ())), total_records)
            for definition in self.schema.definitions
        )
        category_scores = tuple(
            self._category_score(category, field_scores, total_records) for category in self.schema.categories
        )

        if total_records == 0:
            logger.warning("Scoring an empty batch; overall score defaults to 100")

        overall_value = compute_overall_score(total_records, severity_counts, self.weights)
        overall = OverallScore(
            total_records=total_records,
            records_with_errors=len(by_record),
            critical_count=severity_counts[Severity.CRITICAL],
            major_count=severity_counts[Severity.MAJOR],
            minor_count=severity_counts[Severity.MINOR],
            total_penalty_points=penalty_points(severity_counts, self.weights),
            overall_accuracy_score=overall_value,
            traffic_light=traffic_light(overall_value),
            unparseable_records=unparseable_records,
        )
        return ScoreReport(
            overall=overall,
            category_scores=category_scores,
            field_scores=field_scores,
            record_scores=record_scores,
        )

    def _record_score(self, record_id: str, findings: list[ValidationFinding]) -> RecordScore:
        points = sum(self.weights[f.severity] for f in findings)
        return RecordScore(
            record_id=record_id,
            penalty_points=points,
            accuracy_score=record_accuracy(points),
            finding_ids=tuple(sorted(f.finding_id for f in findings)),
        )

    @staticmethod
    def _field_score(field_name: str, category: str, invalid: int, total_records: int) -> FieldScore:
        if total_records == 0:
            validity = MAX_SCORE
        else:
            validity = round_score(Decimal(total_records - invalid) / Decimal(total_records) * 100)
        return FieldScore(field_name=field_name, category=category, invalid_records=invalid, validity_score=validity)

    @staticmethod
    def _category_score(category: str, field_scores: tuple[FieldScore, ...], total_records: int) -> CategoryScore:
        members = [f for f in field_scores if f.category == category]
        invalid = sum(f.invalid_records for f in members)
        cells = len(members) * total_records
        if cells == 0:
            score = MAX_SCORE
        else:
            score = round_score(Decimal(cells - invalid) / Decimal(cells) * 100)
        return CategoryScore(category=category, field_count=len(members), invalid_field_values=invalid, score=score)
