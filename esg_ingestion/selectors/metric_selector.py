"""
Module: esg_ingestion.selectors.metric_selector
Responsibility: Read-only access to metric records and the metrics on an
    entity's active record (by category, by data type, as a time series).

Failure modes:
    - Returns None or an empty list when nothing matches (never raises on
      absence of data).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from esg_ingestion.domain.types import (
    DataType,
    Metric,
    MetricRecord,
    YearlyDataPoint,
    YearlySeries,
)
from esg_ingestion.models.metric_record import MetricRecordModel
from esg_ingestion.selectors.base import BaseSelector


class MetricSelector(BaseSelector[MetricRecordModel]):
    """
    Queries over ``metric_records``.

    Metric-level queries only look at the active record and skip metrics
    with ``is_active=False``.
    """

    def get_record(self, record_id: UUID) -> MetricRecord | None:
        model = self.session.get(MetricRecordModel, record_id)
        return model.to_dto() if model is not None else None

    def get_active_record(self, entity_id: UUID) -> MetricRecord | None:
        model = self.session.execute(
            select(MetricRecordModel).where(
                MetricRecordModel.entity_id == entity_id,
                MetricRecordModel.is_active.is_(True),
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_records(self, entity_id: UUID, include_inactive: bool = False) -> list[MetricRecord]:
        """Records for the entity, newest version first."""
        stmt = select(MetricRecordModel).where(MetricRecordModel.entity_id == entity_id)
        if not include_inactive:
            stmt = stmt.where(MetricRecordModel.is_active.is_(True))
        rows = self.session.execute(
            stmt.order_by(MetricRecordModel.version.desc())
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def _active_metrics(self, entity_id: UUID) -> tuple[Metric, ...]:
        record = self.get_active_record(entity_id)
        if record is None:
            return ()
        return record.active_metrics

    def get_metrics_by_category(
        self,
        entity_id: UUID,
        category: str,
        subcategory: str | None = None,
    ) -> list[Metric]:
        return [
            m for m in self._active_metrics(entity_id)
            if m.category == category and (subcategory is None or m.subcategory == subcategory)
        ]

    def get_metrics_by_data_type(self, entity_id: UUID, data_type: DataType) -> list[Metric]:
        wanted = DataType(data_type)
        return [m for m in self._active_metrics(entity_id) if m.data_type == wanted]

    def get_time_series(
        self,
        entity_id: UUID,
        metric_name: str,
        category: str | None = None,
    ) -> list[YearlyDataPoint]:
        """
        Yearly points of ``metric_name`` ordered by fiscal year.

        Points without a parseable fiscal year sort last, in stored order.
        """
        points: list[YearlyDataPoint] = []
        for m in self._active_metrics(entity_id):
            if m.metric_name != metric_name or not isinstance(m.data, YearlySeries):
                continue
            if category is not None and m.category != category:
                continue
            points.extend(m.data.points)
        return sorted(
            points,
            key=lambda p: (p.fiscal_year is None, p.fiscal_year or 0),
        )
