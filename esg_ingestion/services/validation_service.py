"""
Validation service: score the active record and persist the outcome.

Only ``validation_status``, ``data_quality_score``, ``validation_errors`` and
``validation_notes`` are written; metric content is never touched, so the
pass may be re-run at any time.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from esg_ingestion.domain.types import ValidationStatus, metrics_from_dicts
from esg_ingestion.domain.validation import ValidationReport, score_record
from esg_ingestion.models.metric_record import MetricRecordModel
from esg_kernel.exceptions import RecordNotFoundError
from esg_kernel.logging_config import get_logger

logger = get_logger("ingestion.validation_service")


class ValidationService:
    """Runs ``score_record`` against an entity's active record."""

    def __init__(self, session: Session):
        self._session = session

    def validate_active(self, entity_id: UUID) -> ValidationReport:
        """
        Score the active record of ``entity_id`` and store the result on it.

        Raises:
            RecordNotFoundError: entity has no active record.
        """
        record = self._session.execute(
            select(MetricRecordModel)
            .where(
                MetricRecordModel.entity_id == entity_id,
                MetricRecordModel.is_active.is_(True),
            )
            .with_for_update()
        ).scalar_one_or_none()
        if record is None:
            raise RecordNotFoundError(str(entity_id))

        record.validation_status = ValidationStatus.VALIDATING.value
        self._session.flush()

        report = score_record(metrics_from_dicts(record.metrics or []))

        record.validation_status = report.validation_status.value
        record.data_quality_score = report.data_quality_score
        record.validation_errors = [f.to_dict() for f in report.errors]
        record.validation_notes = report.summary_notes()
        self._session.flush()

        logger.info(
            "record_validated",
            extra={
                "entity_id": str(entity_id),
                "record_id": str(record.id),
                "version": record.version,
                "validation_status": report.validation_status.value,
                "data_quality_score": report.data_quality_score,
                "finding_count": len(report.errors),
            },
        )
        return report
