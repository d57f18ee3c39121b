"""ORM models for ESG ingestion."""

from esg_ingestion.models.metric_record import MetricRecordModel

__all__ = ["MetricRecordModel"]
