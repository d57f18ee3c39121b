"""
Tests for structural validation and data-quality scoring.

score_record is pure; ValidationService persists its outcome on the
entity's active record without touching metric content.
"""

from decimal import Decimal

import pytest

from esg_ingestion.domain.types import (
    ImportSource,
    ListData,
    Metric,
    RecordPayload,
    SingleValue,
    ValidationStatus,
    YearlyDataPoint,
    YearlySeries,
)
from esg_ingestion.domain.validation import FindingSeverity, score_record
from esg_ingestion.services import ValidationService, VersionManager
from esg_kernel.exceptions import RecordNotFoundError


def _series(name="Coal", *points):
    return Metric(category="environmental", metric_name=name, data=YearlySeries(points=tuple(points)))


def _point(year, value, numeric=None):
    return YearlyDataPoint(year=year, value=value, numeric_value=numeric, source="s")


def _single(name, value):
    return Metric(category="governance", metric_name=name, data=SingleValue(source="s", value=value))


class TestScoreRecord:
    def test_clean_record_scores_100(self):
        report = score_record([
            _series("Coal", _point("2023", "5", Decimal("5"))),
            _single("Board Independence", "Yes"),
        ])
        assert report.data_quality_score == 100
        assert report.validation_status == ValidationStatus.VALIDATED
        assert report.errors == ()
        assert report.summary_notes() == "Validation passed with score 100"

    def test_single_value_without_value_fails_record(self):
        report = score_record([_single("Ethics Policy", None)])
        assert report.validation_status == ValidationStatus.FAILED_VALIDATION
        assert report.data_quality_score == 95
        assert report.has_critical_errors
        finding = report.errors[0]
        assert finding.code == "MISSING_SINGLE_VALUE"
        assert finding.metric_name == "Ethics Policy"
        assert finding.severity == FindingSeverity.ERROR

    def test_empty_series_is_a_warning(self):
        report = score_record([_series("Coal")])
        assert report.data_quality_score == 97
        assert report.validation_status == ValidationStatus.VALIDATED
        assert [f.code for f in report.warnings] == ["EMPTY_YEARLY_SERIES"]

    def test_missing_name_deducts_without_failing(self):
        report = score_record([_single("  ", "Yes")])
        assert report.data_quality_score == 95
        assert report.validation_status == ValidationStatus.VALIDATED
        assert report.errors[0].field == "metric_name"

    def test_non_numeric_point_is_flagged_but_kept(self):
        metric = _series("Trend", _point("2023", "Improving"), _point("2024", "N/A"))
        report = score_record([metric])
        assert report.data_quality_score == 100
        assert [(f.code, f.year) for f in report.errors] == [("NON_NUMERIC_VALUE", "2023")]
        assert metric.data.points[0].value == "Improving"

    def test_inactive_metrics_are_skipped(self):
        metric = Metric(
            category="governance", metric_name="Old", is_active=False,
            data=SingleValue(source="s", value=None),
        )
        report = score_record([metric])
        assert report.data_quality_score == 100
        assert report.validation_status == ValidationStatus.VALIDATED

    def test_score_floors_at_zero(self):
        metrics = [_single(f"Policy {i}", "") for i in range(25)]
        report = score_record(metrics)
        assert report.data_quality_score == 0
        assert len(report.errors) == 25

    def test_list_metrics_are_not_scored(self):
        metric = Metric(category="highlights", metric_name="H", data=ListData(items=()))
        assert score_record([metric]).data_quality_score == 100

    def test_summary_notes_counts_by_severity(self):
        report = score_record([_single("A", None), _series("B")])
        assert report.summary_notes() == "Validation completed with score 92: 1 error, 1 warning"


class TestValidationService:
    def _commit(self, session, clock, entity_id, actor_id, metrics):
        return VersionManager(session, clock).commit(
            entity_id,
            RecordPayload(report_type="overall_esg", metrics=tuple(metrics), import_source=ImportSource.MANUAL),
            actor_id,
        )

    def test_persists_outcome_on_active_record(
        self, session, deterministic_clock, entity_id, test_actor_id,
    ):
        record = self._commit(
            session, deterministic_clock, entity_id, test_actor_id,
            [_single("Ethics Policy", None), _single("Board Independence", "Yes")],
        )
        assert record.validation_status == ValidationStatus.NOT_VALIDATED

        report = ValidationService(session).validate_active(entity_id)

        refreshed = VersionManager(session, deterministic_clock).get_versions(entity_id)[0]
        assert refreshed.validation_status == ValidationStatus.FAILED_VALIDATION
        assert refreshed.data_quality_score == report.data_quality_score == 95
        assert refreshed.validation_errors[0]["code"] == "MISSING_SINGLE_VALUE"
        assert refreshed.validation_errors[0]["severity"] == "error"
        assert refreshed.validation_notes == report.summary_notes()

    def test_metric_content_untouched(
        self, session, deterministic_clock, entity_id, test_actor_id,
    ):
        record = self._commit(
            session, deterministic_clock, entity_id, test_actor_id,
            [_series("Coal", _point("2023", "Improving"))],
        )
        ValidationService(session).validate_active(entity_id)
        after = VersionManager(session, deterministic_clock).get_versions(entity_id)[0]
        assert after.metrics == record.metrics
        assert after.version == record.version

    def test_rerun_is_idempotent(
        self, session, deterministic_clock, entity_id, test_actor_id,
    ):
        self._commit(session, deterministic_clock, entity_id, test_actor_id, [_single("A", None)])
        service = ValidationService(session)
        first = service.validate_active(entity_id)
        second = service.validate_active(entity_id)
        assert first == second

    def test_no_active_record(self, session, entity_id):
        with pytest.raises(RecordNotFoundError):
            ValidationService(session).validate_active(entity_id)

    def test_logs_outcome(
        self, session, deterministic_clock, entity_id, test_actor_id, captured_logs,
    ):
        self._commit(session, deterministic_clock, entity_id, test_actor_id, [_single("A", "x")])
        ValidationService(session).validate_active(entity_id)
        logs = [r for r in captured_logs() if r["message"] == "record_validated"]
        assert logs[0]["data_quality_score"] == 100
        assert logs[0]["entity_id"] == str(entity_id)
