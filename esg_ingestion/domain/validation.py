"""
Structural validation and data-quality scoring for a record's metrics.

Deductive score: start at 100 and subtract per finding, floored at 0.

    Check                                   | Severity | Deduction
    ----------------------------------------|----------|----------
    metric has no name                      | error    | 5
    yearly_series with no data points       | warning  | 3
    single_value with no value              | error    | 5 (record fails)
    yearly point value not numeric (kept)   | warning  | 0

Only active metrics are checked. The pass is pure and idempotent; it never
changes metric content.

Architecture: esg_ingestion/domain. ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from esg_ingestion.domain.types import (
    Metric,
    SingleValue,
    ValidationStatus,
    YearlySeries,
)
from esg_ingestion.normalization.coercion import is_missing_value

BASELINE_SCORE = 100
MISSING_NAME_DEDUCTION = 5
EMPTY_SERIES_DEDUCTION = 3
MISSING_VALUE_DEDUCTION = 5


class FindingSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ValidationFinding:
    """One structural finding; data, not an exception."""

    code: str
    error_message: str
    severity: FindingSeverity
    metric_name: str | None = None
    field: str | None = None
    year: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "metric_name": self.metric_name,
            "year": self.year,
            "error_message": self.error_message,
            "field": self.field,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class ValidationReport:
    """Outcome of scoring one record."""

    validation_status: ValidationStatus
    data_quality_score: int
    errors: tuple[ValidationFinding, ...] = ()
    has_critical_errors: bool = False

    @property
    def warnings(self) -> tuple[ValidationFinding, ...]:
        return tuple(f for f in self.errors if f.severity == FindingSeverity.WARNING)

    def summary_notes(self) -> str:
        counts: dict[str, int] = {}
        for f in self.errors:
            counts[f.severity.value] = counts.get(f.severity.value, 0) + 1
        if not counts:
            return f"Validation passed with score {self.data_quality_score}"
        detail = ", ".join(f"{n} {sev}" for sev, n in sorted(counts.items()))
        return f"Validation completed with score {self.data_quality_score}: {detail}"


def score_record(metrics: Iterable[Metric]) -> ValidationReport:
    """Run every check over the active metrics and classify the record."""
    findings: list[ValidationFinding] = []
    score = BASELINE_SCORE
    record_fails = False

    for metric in metrics:
        if not metric.is_active:
            continue
        name = metric.metric_name or None

        if not metric.metric_name or not metric.metric_name.strip():
            score -= MISSING_NAME_DEDUCTION
            findings.append(ValidationFinding(
                code="MISSING_METRIC_NAME",
                error_message="Metric name is required",
                severity=FindingSeverity.ERROR,
                field="metric_name",
            ))

        data = metric.data
        if isinstance(data, YearlySeries):
            if not data.points:
                score -= EMPTY_SERIES_DEDUCTION
                findings.append(ValidationFinding(
                    code="EMPTY_YEARLY_SERIES",
                    error_message="Yearly series has no data points",
                    severity=FindingSeverity.WARNING,
                    metric_name=name,
                    field="yearly_data",
                ))
            for point in data.points:
                if point.numeric_value is None and not is_missing_value(point.value):
                    findings.append(ValidationFinding(
                        code="NON_NUMERIC_VALUE",
                        error_message=f"Value {point.value!r} could not be read as a number",
                        severity=FindingSeverity.WARNING,
                        metric_name=name,
                        field="yearly_data.value",
                        year=point.year,
                    ))
        elif isinstance(data, SingleValue) and not data.has_value:
            score -= MISSING_VALUE_DEDUCTION
            record_fails = True
            findings.append(ValidationFinding(
                code="MISSING_SINGLE_VALUE",
                error_message="Single value metric has no value",
                severity=FindingSeverity.ERROR,
                metric_name=name,
                field="single_value.value",
            ))

    record_fails = record_fails or any(f.severity == FindingSeverity.CRITICAL for f in findings)
    return ValidationReport(
        validation_status=(
            ValidationStatus.FAILED_VALIDATION if record_fails else ValidationStatus.VALIDATED
        ),
        data_quality_score=max(score, 0),
        errors=tuple(findings),
        has_critical_errors=record_fails,
    )
